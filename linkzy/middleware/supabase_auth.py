"""
Supabase authentication middleware for FastAPI.
Validates JWTs server-side by calling Supabase /auth/v1/user.
Auto-creates a Profile (role "user") on first login.
"""

from dataclasses import dataclass
from uuid import UUID, uuid4

import httpx
from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linkzy.config import get_settings
from linkzy.core.users import is_admin
from linkzy.models.database import get_db
from linkzy.models.tables import Profile, UserRole

import structlog

logger = structlog.get_logger()


@dataclass
class SupabaseAuthContext:
    user_id: UUID
    supabase_id: str
    email: str
    is_admin: bool = False


async def _validate_supabase_token(token: str) -> dict:
    """Call Supabase /auth/v1/user to validate the Bearer token server-side."""
    settings = get_settings()
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.get(
                f"{settings.supabase_url}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": settings.supabase_anon_key,
                },
            )
    except httpx.HTTPError as exc:
        logger.error("supabase_unreachable", error=str(exc))
        raise HTTPException(status_code=503, detail="Authentication service unavailable")
    if resp.status_code != 200:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return resp.json()


async def _get_or_create_profile(supabase_user: dict, db: AsyncSession) -> Profile:
    """Find profile by supabase_id or auto-create it with the default role."""
    supabase_id = supabase_user["id"]
    email = supabase_user.get("email", "")

    result = await db.execute(select(Profile).where(Profile.supabase_id == supabase_id))
    profile = result.scalar_one_or_none()
    if profile:
        return profile

    # First login: create profile + default role
    profile = Profile(id=uuid4(), supabase_id=supabase_id, email=email)
    db.add(profile)
    await db.flush()
    db.add(UserRole(user_id=profile.id, role="user"))
    await db.commit()
    logger.info("profile_created", user_id=str(profile.id), email=email)
    return profile


async def require_supabase_auth(
    request: Request, db: AsyncSession = Depends(get_db)
) -> SupabaseAuthContext:
    """FastAPI dependency — extracts Bearer token, validates, returns auth context."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")

    token = auth_header[7:]
    supabase_user = await _validate_supabase_token(token)
    profile = await _get_or_create_profile(supabase_user, db)

    return SupabaseAuthContext(
        user_id=profile.id,
        supabase_id=profile.supabase_id,
        email=profile.email,
        is_admin=await is_admin(db, profile.id),
    )


async def require_admin(
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
) -> SupabaseAuthContext:
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return auth
