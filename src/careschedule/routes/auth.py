"""
Authentication Routes

Bearer token verification. Tokens are issued by the identity provider;
this service only checks them and reads the caller identity.
"""
import jwt
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends, Header

from ..config import Config

logger = logging.getLogger("careschedule.routes.auth")
router = APIRouter(prefix="/auth", tags=["auth"])


# ============================================
# Helpers
# ============================================

def create_token(user_id: UUID, expires_in_hours: int = 24) -> str:
    """Create a JWT the way the identity provider does (tooling and tests)"""
    expiration = datetime.now(timezone.utc) + timedelta(hours=expires_in_hours)
    payload = {
        "user_id": str(user_id),
        "exp": expiration,
    }
    return jwt.encode(payload, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)


def verify_token(token: str) -> Optional[dict]:
    """Verify and decode JWT token"""
    try:
        payload = jwt.decode(token, Config.JWT_SECRET, algorithms=[Config.JWT_ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


async def get_current_user(authorization: str = Header(None)) -> dict:
    """Dependency to get current authenticated caller"""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    # Expect "Bearer <token>"
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = parts[1]
    payload = verify_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    try:
        user_id = UUID(payload["user_id"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Token carries no valid user_id")

    return {"user_id": user_id}


# ============================================
# Routes
# ============================================

@router.get("/me")
async def get_current_user_info(current_user: dict = Depends(get_current_user)):
    """Get the caller identity this service sees"""
    return {"user_id": str(current_user["user_id"])}
