"""
Common FastAPI dependencies
"""
import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.config import settings


async def require_admin_key(x_admin_key: Optional[str] = Header(None)) -> None:
    """Guard admin endpoints with the X-Admin-Key header."""
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is not configured"
        )
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key"
        )
