# storefront/core/auth.py
from typing import Optional

from fastapi import HTTPException, Request, status
from firebase_admin import auth as fb_auth

from storefront.config import get_firebase_app
from storefront.schemas.principal import Principal, Role, parse_roles


def _extract_bearer_token(request: Request) -> Optional[str]:
    """
    Reads the token from an `Authorization: Bearer <id_token>` header.
    Returns None when absent.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_id_token(id_token: str) -> dict:
    """
    Firebase ID token verification.
    Invalid, revoked or expired tokens produce a 401.
    """
    try:
        return fb_auth.verify_id_token(id_token, app=get_firebase_app(), check_revoked=True)
    except fb_auth.ExpiredIdTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except fb_auth.RevokedIdTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def token_to_principal(decoded: dict) -> Principal:
    """
    Builds a Principal from verified claims.
    - anonymous provider -> {guest}
    - `roles` custom claim -> parsed Role set
    - legacy custom claim admin=True -> adds admin
    - nothing else -> {customer}
    """
    uid = decoded.get("uid") or decoded.get("user_id")
    if not uid:
        raise HTTPException(status_code=401, detail="Token missing uid.")

    firebase_info = decoded.get("firebase") or {}
    if firebase_info.get("sign_in_provider") == "anonymous":
        roles = {Role.guest}
    else:
        roles = parse_roles(decoded.get("roles"))
        if decoded.get("admin") is True:
            roles.add(Role.admin)
        if not roles:
            roles = {Role.customer}

    return Principal(
        uid=uid,
        roles=roles,
        email=decoded.get("email"),
        display_name=decoded.get("name"),
        phone=decoded.get("phone_number"),
    )

# --------- FastAPI Dependencies --------- #

async def get_optional_principal(request: Request) -> Optional[Principal]:
    """
    Token optional: verified when present, None otherwise.
    Used by the cart endpoints, which also serve guests.
    """
    token = _extract_bearer_token(request)
    if not token:
        return None
    return token_to_principal(_decode_id_token(token))


async def get_principal(request: Request) -> Principal:
    """Token required."""
    token = _extract_bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token_to_principal(_decode_id_token(token))
