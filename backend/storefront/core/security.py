"""
storefront/core/security.py - role based authorization helpers.

Authentication itself lives in `core/auth.py` (Firebase ID token -> Principal).
This module only decides whether an authenticated principal may use a route.

    admin_router = APIRouter(dependencies=[Depends(get_current_admin)])
    @router.put("/{id}/status", dependencies=[Depends(require_roles(Role.admin, Role.staff))])
"""
from fastapi import Depends, HTTPException, status

from storefront.core.auth import get_principal
from storefront.schemas.principal import Principal, Role


def require_roles(*allowed: Role):
    """Dependency factory: the principal must hold at least one of `allowed`."""
    if not allowed:
        raise ValueError("require_roles() needs at least one role")

    def _dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if not principal.has_any(*allowed):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this action.",
            )
        return principal

    return _dependency


get_current_admin = require_roles(Role.admin)


def require_non_guest(principal: Principal = Depends(get_principal)) -> Principal:
    """Rejects anonymous (guest) Firebase sessions with 403."""
    if principal.is_guest:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Guest users are not allowed for this action."
        )
    return principal
