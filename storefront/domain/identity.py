# storefront/domain/identity.py
from dataclasses import dataclass

from storefront.domain.errors import ValidationError


@dataclass(frozen=True)
class CartIdentity:
    """Owner of a cart: a registered user or a guest session, never both."""

    user_id: int | None = None
    session_id: str | None = None

    def __post_init__(self):
        if (self.user_id is None) == (self.session_id is None):
            raise ValidationError("Cart identity needs exactly one of user_id or session_id")
        if self.user_id is not None and self.user_id <= 0:
            raise ValidationError("user_id must be positive")
        if self.session_id is not None and not self.session_id.strip():
            raise ValidationError("session_id cannot be blank")

    @classmethod
    def for_user(cls, user_id: int) -> "CartIdentity":
        return cls(user_id=user_id)

    @classmethod
    def for_guest(cls, session_id: str) -> "CartIdentity":
        return cls(session_id=session_id)

    @property
    def is_registered(self) -> bool:
        return self.user_id is not None

    @property
    def key(self) -> str:
        if self.is_registered:
            return f"user:{self.user_id}"
        return f"session:{self.session_id}"

    def __str__(self) -> str:
        return self.key
