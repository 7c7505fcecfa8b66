"""
storefront/schemas/principal.py
Roles and the Principal model.
"""
import logging
from enum import Enum
from typing import Iterable, Optional, Set

from pydantic import BaseModel, Field

logger = logging.getLogger("storefront.auth")


class Role(str, Enum):
    admin = "admin"
    staff = "staff"
    cashier = "cashier"
    customer = "customer"
    guest = "guest"


def parse_roles(raw: Optional[Iterable]) -> Set[Role]:
    """Map claim strings onto Role; unknown names are dropped, never granted."""
    roles: Set[Role] = set()
    if isinstance(raw, str):
        raw = [raw]
    for name in raw or []:
        try:
            roles.add(Role(str(name).strip().lower()))
        except ValueError:
            logger.warning("Ignoring unknown role claim %r", name)
    return roles


class Principal(BaseModel):
    uid: str = Field(..., description="Firebase UID")
    roles: Set[Role] = Field(default_factory=lambda: {Role.customer})
    email: Optional[str] = Field(None, description="E-mail (if any)")
    display_name: Optional[str] = Field(None, description="Display name (if any)")
    phone: Optional[str] = None

    @property
    def is_guest(self) -> bool:
        return Role.guest in self.roles

    def has_any(self, *roles: Role) -> bool:
        return bool(self.roles.intersection(roles))
