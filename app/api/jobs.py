"""
Scheduled job endpoints for external cron integration.

The in-process timer sweeps the queue once a day. This module lets an external
scheduler (e.g. Cloud Scheduler) trigger the same sweep on demand. Requests are
secured with OIDC token authentication (preferred) or a legacy API key.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from pydantic import BaseModel

from app.config import settings
from app.context import AppContext, get_context
from app.models.schemas import SweepItem, SweepTrigger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


class SweepResult(BaseModel):
    executed_at: datetime
    total_pending: int
    booked: int
    failed: int
    remaining: int
    results: list[SweepItem]


def verify_oidc_token(authorization: str) -> bool:
    """
    Verify OIDC token from Cloud Scheduler.

    Returns True if the token is valid and from the expected service account.
    """
    if not authorization.startswith("Bearer "):
        return False

    token = authorization[7:]  # Remove "Bearer " prefix

    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request())  # type: ignore[no-untyped-call]

        email = claims.get("email", "")
        if settings.scheduler_service_account and email != settings.scheduler_service_account:
            logger.warning(
                "OIDC token email mismatch: "
                f"expected {settings.scheduler_service_account}, got {email}"
            )
            return False

        logger.info(f"OIDC token verified for service account: {email}")
        return True
    except google_auth_exceptions.GoogleAuthError as e:
        logger.warning(f"OIDC token verification failed: {e}")
        return False
    except ValueError as e:
        logger.warning(f"OIDC token validation error: {e}")
        return False


def verify_scheduler_auth(
    authorization: str | None = Header(None, description="Bearer token for OIDC authentication"),
    x_scheduler_api_key: str | None = Header(
        None, description="Legacy API key for scheduler authentication"
    ),
) -> None:
    """
    Verify scheduler authentication using OIDC token (preferred) or legacy API key.
    """
    if authorization:
        if verify_oidc_token(authorization):
            return

    if x_scheduler_api_key:
        if not settings.scheduler_api_key:
            raise HTTPException(status_code=500, detail="Scheduler API key not configured")
        if x_scheduler_api_key == settings.scheduler_api_key:
            return
        raise HTTPException(
            status_code=401,
            detail="Invalid scheduler API key",
        )

    raise HTTPException(
        status_code=401,
        detail="Authentication required. Provide OIDC token or X-Scheduler-API-Key header.",
    )


@router.post("/sweep", response_model=SweepResult)
async def run_sweep(
    _: None = Depends(verify_scheduler_auth),
    context: AppContext = Depends(get_context),
) -> SweepResult:
    """
    Sweep the pending queue now and report what happened to each request.

    Waits for any sweep already in progress, then books every request whose
    booking window has opened. Failed requests stay queued.
    """
    report = await context.scheduler.run_sweep(SweepTrigger.MANUAL)

    return SweepResult(
        executed_at=report.executed_at,
        total_pending=len(report.items),
        booked=report.booked,
        failed=report.failed,
        remaining=report.remaining,
        results=report.items,
    )
