"""
middleware/authorization.py — The single authorization predicate.

Every role and ownership decorator in auth_middleware.py reduces to one call:

    is_authorized(identity, roles=..., owner_id=...)

which is the conjunction of two capability checks:

    has_role(identity, roles)   — role is in the allowed set (None = any role)
    owns(identity, owner_id)    — identity is the owner, or an admin

Owner lookup for a resource type is table-driven (OWNER_RESOLVERS) so adding
a new owned resource means adding one resolver, not another decorator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from secure_api.app.errors import ErrorCode
from secure_api.app.models.product import Product
from secure_api.app.models.user import ROLE_ADMIN, User


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, attached to flask.g.current_user."""

    id: int
    username: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(id=user.id, username=user.username, email=user.email, role=user.role)

    def to_dict(self) -> dict:
        return {"id": self.id, "username": self.username, "email": self.email, "role": self.role}


# ── Capability checks ──────────────────────────────────────────────────────

def has_role(identity: Identity, roles: Iterable[str] | None) -> bool:
    if roles is None:
        return True
    return identity.role in set(roles)


def owns(identity: Identity, owner_id: int | None) -> bool:
    if owner_id is None or identity.is_admin:
        return True
    return identity.id == owner_id


def is_authorized(
        identity: Identity | None,
        *,
        roles: Iterable[str] | None = None,
        owner_id: int | None = None,
) -> bool:
    if identity is None:
        return False
    return has_role(identity, roles) and owns(identity, owner_id)


# ── Resource owner resolution ──────────────────────────────────────────────
#
# Each resolver returns the owning user id, or None if the resource does not
# exist. The second element is the error code used for the 404.
# ──────────────────────────────────────────────────────────────────────────

def _product_owner(session: Session, resource_id: int) -> int | None:
    product = session.get(Product, resource_id)
    return product.user_id if product is not None else None


def _user_owner(session: Session, resource_id: int) -> int | None:
    # A user record is owned by that user: this is the self-or-admin rule.
    user = session.get(User, resource_id)
    return user.id if user is not None else None


OWNER_RESOLVERS: dict[str, tuple[Callable[[Session, int], int | None], str]] = {
    "product": (_product_owner, ErrorCode.PRODUCT_NOT_FOUND),
    "user":    (_user_owner, ErrorCode.USER_NOT_FOUND),
}
