"""Claim API endpoint — lets remote workers claim a batch over HTTP."""

from fastapi import APIRouter, Depends

from cadence.core.auth import verify_api_key
from cadence.core.config import get_settings
from cadence.core.database import Database, get_database
from cadence.models.types import as_utc, utcnow
from cadence.schemas.schedule import ClaimBatchResponse, ClaimRequest
from cadence.services.claim_queue import ClaimQueue

router = APIRouter(prefix="/claims", tags=["claims"])


@router.post("", response_model=ClaimBatchResponse)
async def claim_due(
    body: ClaimRequest,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    """Claim and commit up to ``max_batch_size`` due items."""
    now = as_utc(body.now) if body.now else utcnow()
    queue = ClaimQueue(database, skip_locked=get_settings().skip_locked)
    items = await queue.claim_due(body.max_batch_size, now)
    return ClaimBatchResponse(items=items, total=len(items), claimed_at=now)
