"""Profiles and roles."""

from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from linkzy.core.errors import NotFoundError, ValidationError
from linkzy.models.tables import Link, Profile, UserRole

import structlog

logger = structlog.get_logger()

ROLES = ("user", "admin")


async def is_admin(db: AsyncSession, user_id: UUID) -> bool:
    result = await db.execute(
        select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == "admin").limit(1)
    )
    return result.scalar_one_or_none() is not None


async def list_users(db: AsyncSession) -> list[dict]:
    """All profiles, newest first, each with its effective role.

    total_earnings is summed from the user's links on every read, so it
    always matches what the owner dashboard shows.
    """
    earnings = (
        select(Link.owner_id, func.sum(Link.earnings).label("earnings"))
        .group_by(Link.owner_id)
        .subquery()
    )
    profiles_result = await db.execute(
        select(Profile, func.coalesce(earnings.c.earnings, 0).label("total_earnings"))
        .outerjoin(earnings, earnings.c.owner_id == Profile.id)
        .order_by(Profile.created_at.desc())
    )
    rows = profiles_result.all()

    admins_result = await db.execute(select(UserRole.user_id).where(UserRole.role == "admin"))
    admin_ids = set(admins_result.scalars().all())

    return [
        {
            "id": str(profile.id),
            "email": profile.email,
            "created_at": profile.created_at.isoformat() if profile.created_at else None,
            "total_earnings": float(total_earnings or 0),
            "role": "admin" if profile.id in admin_ids else "user",
        }
        for profile, total_earnings in rows
    ]


async def set_role(db: AsyncSession, user_id: UUID, role: str):
    """Replace every role row of the user with exactly one."""
    if role not in ROLES:
        raise ValidationError("role must be 'user' or 'admin'")

    result = await db.execute(select(Profile.id).where(Profile.id == user_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError("User not found")

    await db.execute(delete(UserRole).where(UserRole.user_id == user_id))
    db.add(UserRole(user_id=user_id, role=role))
    await db.commit()
    logger.info("user_role_changed", user_id=str(user_id), role=role)
