"""
Admin-only endpoints protected by the shared admin secret (cron jobs).
"""

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException

from promptpool.config import settings
from promptpool.dependencies import get_generator, get_users
from promptpool.services.pool_maintenance import top_up_pools

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _require_admin_secret(x_admin_secret: str = Header(default="")) -> None:
    if not settings.admin_secret or not hmac.compare_digest(x_admin_secret, settings.admin_secret):
        raise HTTPException(status_code=403, detail="Admin access required")


@router.post("/pool-top-up", dependencies=[Depends(_require_admin_secret)])
async def pool_top_up(users=Depends(get_users), generator=Depends(get_generator)):
    """Nightly job: add a generation round per practice category for every user."""
    added = await top_up_pools(users, generator)
    return {
        "message": "Nightly update completed successfully",
        "users": len(added),
        "added": added,
    }
