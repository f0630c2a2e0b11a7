"""Scheduled job entrypoints, protected by a shared secret header."""

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.api.deps import get_db
from familyhub.auth.verification import purge_expired_tokens
from familyhub.billing.sync import sync_all_households
from familyhub.config import settings

logger = logging.getLogger(__name__)


async def verify_cron_secret(x_cron_secret: str = Header("")) -> None:
    """Reject calls without the configured ``X-Cron-Secret`` header."""
    if not settings.cron_secret or not hmac.compare_digest(x_cron_secret, settings.cron_secret):
        logger.warning("Rejected cron call with missing or wrong secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")


router = APIRouter(prefix="/api/v1/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


@router.post("/sync-subscriptions")
async def sync_subscriptions(db: AsyncSession = Depends(get_db)) -> dict:
    """Sync every household owner's subscription with Stripe."""
    return await sync_all_households(db)


@router.post("/purge-tokens")
async def purge_tokens(db: AsyncSession = Depends(get_db)) -> dict:
    """Delete expired and used caregiver codes."""
    return {"purged": await purge_expired_tokens(db), "errors": []}
