from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse, Response
import logging

from magenta_epg.schemas import RegenerationResponse, ServiceInfo
from magenta_epg.services import (
    RegenerationController,
    get_regeneration_controller,
    feed_scheduler
)


logger = logging.getLogger(__name__)

main_router = APIRouter()

VERSION = "0.1.0"
NO_FEED_MESSAGE = "No EPG generated yet."

Controller = Annotated[RegenerationController, Depends(get_regeneration_controller)]


@main_router.get("/", response_model=ServiceInfo)
async def root(controller: Controller) -> ServiceInfo:
    """Root endpoint with service information"""
    generated_at = controller.artifact_generated_at()
    next_run = feed_scheduler.get_next_run_time()

    return ServiceInfo(
        service="Magenta EPG Feed",
        version=VERSION,
        feed_generated_at=generated_at.isoformat() if generated_at else None,
        regeneration_in_progress=controller.lease_lock.is_held(),
        next_scheduled_check=next_run.isoformat() if next_run else None,
        endpoints={
            "feed": "/epg.xml.gz - Gzipped XMLTV feed, regenerated when stale",
            "fetch": "/fetch - Manually trigger feed regeneration (POST)",
            "health": "/health - Health check",
        },
    )


@main_router.get("/health")
async def health_check() -> dict:
    """Health check endpoint"""
    next_run = feed_scheduler.get_next_run_time()
    return {
        "status": "ok",
        "scheduler_running": feed_scheduler.running,
        "next_check": next_run.isoformat() if next_run else None
    }


@main_router.get("/epg")
@main_router.get("/epg.xml.gz")
async def get_feed(controller: Controller) -> Response:
    """
    Serve the gzipped XMLTV feed

    Regenerates synchronously first when the feed is stale and no other
    regeneration holds the lease. Failures are reported in the body as
    plain text instead of an HTTP error.
    """
    result = await controller.regenerate_if_needed()
    if result.status == "failed":
        return PlainTextResponse(f"Exception: {result.message}")

    artifact = await controller.read_artifact()
    if artifact is None:
        return PlainTextResponse(NO_FEED_MESSAGE)

    return Response(
        content=artifact,
        media_type="application/xml",
        headers={"Content-Encoding": "gzip"},
    )


@main_router.post("/fetch", response_model=RegenerationResponse)
async def trigger_fetch(controller: Controller) -> RegenerationResponse:
    """
    Manually trigger feed regeneration

    Ignores the feed age but still respects a running regeneration.
    """
    logger.info("Manual feed regeneration triggered via API")
    result = await controller.regenerate_if_needed(force=True)

    if result.status == "failed":
        raise HTTPException(status_code=500, detail=result.to_dict())

    return RegenerationResponse(**result.to_dict())
