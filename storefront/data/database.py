# storefront/data/database.py
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from storefront.utils.settings import DATABASE_URL


def make_engine(url: str = DATABASE_URL):
    if url.startswith("sqlite"):
        # request handlers and the celery worker share file-backed sqlite in dev/tests
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


def make_session_factory(bind) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


engine = make_engine()
SessionLocal = make_session_factory(engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Checkout opens its own unit of work per attempt instead of a request-scoped session."""
    return SessionLocal


def init_db(bind=None) -> None:
    # models have to be imported before create_all so they are in Base.metadata
    import storefront.data.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def ping(db: Session) -> bool:
    return db.execute(text("SELECT 1")).scalar() == 1
