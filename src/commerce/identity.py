"""Who is shopping: an authenticated user or an anonymous guest session."""

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class Identity:
    user_id: str | None = None
    session_id: str | None = None
    is_admin: bool = False

    def __post_init__(self):
        if not (self.user_id or self.session_id):
            raise ValueError("Identity needs a user id or a session id")

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @classmethod
    def user(cls, user_id: str, is_admin: bool = False) -> "Identity":
        return cls(user_id=user_id, is_admin=is_admin)

    @classmethod
    def guest(cls, session_id: str | None = None) -> "Identity":
        return cls(session_id=session_id or uuid4().hex)


ADMIN_ROLE = "admin"


def resolve_identity(user_id: str | None, role: str | None, session_id: str | None) -> tuple[Identity, bool]:
    """Identity for a request, plus whether a new guest session had to be issued.

    ``user_id`` and ``role`` come from the upstream authentication layer;
    ``session_id`` from the guest session cookie.
    """
    if user_id:
        return Identity.user(user_id, is_admin=(role or "").lower() == ADMIN_ROLE), False
    if session_id:
        return Identity.guest(session_id), False
    return Identity.guest(), True
