"""
Email generation and tracking API routes.
"""
import base64
import uuid
from typing import Optional, List

from fastapi import APIRouter, Depends, Response
from fastapi.responses import RedirectResponse

from directreach.config import settings
from directreach.api.deps import get_email_tracking_service, get_rate_limiter
from directreach.schemas.common import ActivityLogRead
from directreach.schemas.tracking import (
    GenerateEmailRequest, CopyEmailRequest, EmailTrackingRead, EmailStats
)
from directreach.services.email_tracking_service import EmailTrackingService
from directreach.services.rate_limiter import AIRateLimiter

router = APIRouter(prefix=f"{settings.API_PREFIX}/emails", tags=["emails"])

# 1x1 transparent GIF
TRACKING_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")


@router.post("/generate", response_model=EmailTrackingRead, status_code=201)
async def generate_email(
    data: GenerateEmailRequest,
    service: EmailTrackingService = Depends(get_email_tracking_service)
):
    """Generate an email for a prospect and start tracking it."""
    return await service.generate_and_track(data.prospect_id, data.room, data.email_number)


@router.get("/stats", response_model=EmailStats)
async def email_stats(
    prospect_id: Optional[uuid.UUID] = None,
    service: EmailTrackingService = Depends(get_email_tracking_service)
):
    return await service.stats(prospect_id)


@router.get("/usage")
async def ai_usage(period: str = "today", rate_limiter: AIRateLimiter = Depends(get_rate_limiter)):
    """AI generation usage and remaining hourly budget."""
    return {
        "period": period,
        **rate_limiter.usage_stats(period),
        "average_cost": rate_limiter.average_cost(period),
        "remaining_this_hour": rate_limiter.remaining(),
    }


@router.post("/{tracking_id}/copy", response_model=EmailTrackingRead)
async def copy_email(
    tracking_id: uuid.UUID,
    data: CopyEmailRequest,
    service: EmailTrackingService = Depends(get_email_tracking_service)
):
    """Mark an email as copied for sending and advance the prospect's sequence."""
    return await service.mark_copied(tracking_id, data.prospect_id, data.url)


@router.get("/{tracking_id}/activity", response_model=List[ActivityLogRead])
async def email_activity(tracking_id: uuid.UUID, service: EmailTrackingService = Depends(get_email_tracking_service)):
    return await service.activity(tracking_id)


@router.post("/cleanup")
async def cleanup_tracking(
    days: Optional[int] = None,
    service: EmailTrackingService = Depends(get_email_tracking_service)
):
    """Delete tracking records older than the retention period."""
    return {"deleted": await service.cleanup(days)}


@router.get("/track-open/{token}")
async def track_open(token: str, service: EmailTrackingService = Depends(get_email_tracking_service)):
    """Tracking pixel."""
    await service.mark_opened(token)
    return Response(
        content=TRACKING_PIXEL,
        media_type="image/gif",
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


@router.get("/track-click/{token}")
async def track_click(token: str, service: EmailTrackingService = Depends(get_email_tracking_service)):
    record = await service.mark_clicked(token)
    if record.url_included:
        return RedirectResponse(record.url_included, status_code=302)
    return {"status": record.status}
