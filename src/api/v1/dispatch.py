"""
API v1 outbox routes.

Cron-triggered dispatcher runs and admin tooling for the email outbox.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import (
    get_access_policy,
    get_current_admin,
    get_dispatcher,
    get_outbox_repository,
    require_cron_secret,
)
from src.api.models import (
    DispatchRequest,
    DispatchResponse,
    ErrorResponse,
    OutboxStatsResponse,
    RetryRequest,
    RetryResponse,
)
from src.config.settings import Settings, get_settings
from src.domain.dispatcher import Dispatcher
from src.domain.exceptions import StorageError
from src.domain.ports import AccessPolicy, OutboxRepository
from src.domain.tokens import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["v1"])

_DISPATCH_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Missing or wrong cron secret"},
    500: {"model": ErrorResponse, "description": "Outbox storage failure"},
}


def _run(dispatcher: Dispatcher, settings: Settings, dry_run: bool, batch_size: int | None) -> DispatchResponse:
    config = settings.dispatch_config(dry_run=dry_run, batch_size=batch_size)
    try:
        report = dispatcher.run(config)
    except StorageError as e:
        logger.error("Dispatch run aborted: %s", e.__cause__ or e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        ) from None
    return DispatchResponse(**report.to_dict())


@router.get(
    "/dispatch-emails",
    response_model=DispatchResponse,
    responses=_DISPATCH_RESPONSES,
    dependencies=[Depends(require_cron_secret)],
    summary="Run the email dispatcher (cron)",
)
def dispatch_emails_get(
    dry_run: bool = Query(default=False),
    dispatcher: Dispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> DispatchResponse:
    """Drain one batch of pending outbox entries using the configured batch size."""
    return _run(dispatcher, settings, dry_run, None)


@router.post(
    "/dispatch-emails",
    response_model=DispatchResponse,
    responses={**_DISPATCH_RESPONSES, 422: {"description": "batchSize outside 1..100"}},
    dependencies=[Depends(require_cron_secret)],
    summary="Run the email dispatcher with options",
)
def dispatch_emails_post(
    request_data: DispatchRequest | None = None,
    dispatcher: Dispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> DispatchResponse:
    """
    Drain one batch of pending outbox entries.

    - **batchSize**: Entries to consider, 1..100 (defaults to DISPATCH_BATCH_SIZE)
    - **dryRun**: Count what would be sent without delivering
    """
    body = request_data or DispatchRequest()
    return _run(dispatcher, settings, body.dry_run, body.batch_size)


@router.get(
    "/email-outbox/stats",
    response_model=OutboxStatsResponse,
    responses={403: {"model": ErrorResponse, "description": "Not an admin"}},
    summary="Outbox counts per status",
)
async def outbox_stats(
    admin: str = Depends(get_current_admin),
    access: AccessPolicy = Depends(get_access_policy),
    outbox: OutboxRepository = Depends(get_outbox_repository),
) -> OutboxStatsResponse:
    if not access.is_admin(admin):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    try:
        stats = outbox.stats()
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Storage unavailable"
        ) from None
    return OutboxStatsResponse(counts=stats["counts"], oldest_pending=stats["oldest_pending"])


@router.post(
    "/email-outbox/retry",
    response_model=RetryResponse,
    responses={403: {"model": ErrorResponse, "description": "Not a super admin"}},
    summary="Requeue failed or blocked emails",
)
async def outbox_retry(
    request_data: RetryRequest,
    admin: str = Depends(get_current_admin),
    access: AccessPolicy = Depends(get_access_policy),
    outbox: OutboxRepository = Depends(get_outbox_repository),
) -> RetryResponse:
    """Move error or blocked entries back to pending for the next dispatcher run."""
    if not access.can_approve(admin):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    try:
        requeued = outbox.requeue(request_data.ids, utcnow())
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Storage unavailable"
        ) from None
    logger.info("Requeued %d of %d outbox entries by %s", requeued, len(request_data.ids), admin)
    return RetryResponse(requeued=requeued)
