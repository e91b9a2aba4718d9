# storefront/api/deps.py
from fastapi import Depends, Header
from sqlalchemy.orm import sessionmaker

from storefront.api.errors import raise_http
from storefront.data.database import get_session_factory
from storefront.domain.errors import AuthenticationError, ValidationError
from storefront.domain.identity import CartIdentity
from storefront.services.checkout_service import CheckoutOrchestrator
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService


def get_optional_identity(
    x_user_id: int | None = Header(None),
    x_session_id: str | None = Header(None),
) -> CartIdentity | None:
    """
    The auth layer sets X-User-Id for logged-in customers and X-Session-Id
    for guests. A logged-in request may still carry its old session header;
    the user wins.
    """
    try:
        if x_user_id is not None:
            return CartIdentity.for_user(x_user_id)
        if x_session_id:
            return CartIdentity.for_guest(x_session_id)
    except ValidationError as e:
        raise_http(e)
    return None


def get_identity(identity: CartIdentity | None = Depends(get_optional_identity)) -> CartIdentity:
    if identity is None:
        raise_http(ValidationError("X-User-Id or X-Session-Id header is required"))
    return identity


def get_user_identity(identity: CartIdentity = Depends(get_identity)) -> CartIdentity:
    if not identity.is_registered:
        raise_http(AuthenticationError("Login required"))
    return identity


def get_lock_service() -> LockService:
    return LockService()


def get_notifier() -> NotificationService:
    return NotificationService()


def get_orchestrator(
    session_factory: sessionmaker = Depends(get_session_factory),
    lock_service: LockService = Depends(get_lock_service),
    notifier: NotificationService = Depends(get_notifier),
) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        session_factory=session_factory,
        lock_service=lock_service,
        notifier=notifier,
    )
