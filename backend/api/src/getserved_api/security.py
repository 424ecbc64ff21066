"""Caller identity from API Gateway headers.

API Gateway validates the JWT and passes the identity on as headers:

- ``x-user-sub``: the caller's user id (JWT ``sub`` claim)
- ``x-user-roles``: comma-separated roles, e.g. ``customer,admin``

Routes depend on ``get_principal`` (any signed-in caller) or
``require_admin``, and check booking ownership with ``ensure_party``.
"""

from dataclasses import dataclass, field

from fastapi import Depends, Header

from getserved.models.booking import Booking
from getserved.models.errors import ErrorCode, EscrowError

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""

    sub: str
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


def _parse_roles(raw: str | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(part.strip().lower() for part in raw.split(",") if part.strip())


def get_principal(
    x_user_sub: str | None = Header(default=None),
    x_user_roles: str | None = Header(default=None),
) -> Principal:
    """Read the caller from the gateway headers, 401 when absent."""
    sub = (x_user_sub or "").strip()
    if not sub:
        raise EscrowError(ErrorCode.AUTH_REQUIRED)
    return Principal(sub=sub, roles=_parse_roles(x_user_roles))


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    """Allow only callers holding the admin role."""
    if not principal.is_admin:
        raise EscrowError(ErrorCode.FORBIDDEN, "Admin access required")
    return principal


def ensure_party(principal: Principal, booking: Booking, *, allow_admin: bool = True) -> None:
    """Raise FORBIDDEN unless the caller is the booking's customer or provider."""
    if allow_admin and principal.is_admin:
        return
    if principal.sub not in (booking.customer_id, booking.provider_id):
        raise EscrowError(
            ErrorCode.FORBIDDEN,
            "You can only access your own bookings",
            details={"booking_id": booking.booking_id},
        )


def ensure_self_or_admin(principal: Principal, user_id: str) -> None:
    """Raise FORBIDDEN unless the caller is ``user_id`` or an admin."""
    if principal.is_admin or principal.sub == user_id:
        return
    raise EscrowError(ErrorCode.FORBIDDEN)
