import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt

from .config import ADMIN_JWT_ALGORITHM, ADMIN_JWT_SECRET

logger = logging.getLogger(__name__)

security = HTTPBearer()


def decode_admin_token(token: str) -> dict:
    """
    Verify an admin JWT issued by the admin auth service.

    Returns the admin identity {"id", "email"}.
    """
    try:
        payload = jose_jwt.decode(token, ADMIN_JWT_SECRET, algorithms=[ADMIN_JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"⚠️ Invalid admin token: {e}")
        raise HTTPException(status_code=401, detail="Invalid admin token") from e

    admin_id = payload.get("id") or payload.get("sub")
    if not admin_id:
        logger.warning("⚠️ Admin token missing subject")
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return {"id": str(admin_id), "email": payload.get("email")}


async def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """FastAPI dependency for admin-only endpoints"""
    return decode_admin_token(credentials.credentials)
