from datetime import datetime, timezone
from typing import Annotated
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, Response

from epg_aggregator.dependencies import ServiceContainer, get_container
from epg_aggregator.exceptions import NoChannelDataAvailable
from epg_aggregator.services.listings_service import ListingsResult
from epg_aggregator.utils.xmltv_writer import render_error_document, render_unavailable_document


logger = logging.getLogger(__name__)

main_router = APIRouter()

XML_MEDIA_TYPE = "application/xml; charset=utf-8"
MAX_HEADER_LENGTH = 200


@main_router.get("/")
async def listings(container: Annotated[ServiceContainer, Depends(get_container)]) -> Response:
    """
    Main listings document

    Served from the full tier, else the partial tier, else rebuilt within the
    request budget. Cache tier and coverage are reported in headers.
    """
    try:
        result = await container.listings.get_listings()
    except NoChannelDataAvailable as e:
        logger.error(f"Listings rebuild failed: {e}")
        return _outage_response(container, str(e))
    except Exception as e:
        logger.error(f"Unexpected error building listings: {e}", exc_info=True)
        return _outage_response(container, str(e) or type(e).__name__)

    return Response(
        content=result.document,
        media_type=XML_MEDIA_TYPE,
        headers=_listing_headers(result),
    )


@main_router.get("/health")
async def health_check() -> PlainTextResponse:
    """Health check endpoint"""
    return PlainTextResponse("OK - Progressive EPG")


@main_router.get("/status")
async def status(container: Annotated[ServiceContainer, Depends(get_container)]) -> dict:
    """Cache tiers, channel cache and effective configuration"""
    settings = container.settings
    next_run = container.scheduler.get_next_run_time()
    diagnostics = container.listings.status()

    diagnostics["config"] = {
        "max_execution_sec": settings.max_execution_sec,
        "fetch_timeout_sec": settings.fetch_timeout_sec,
        "batch_size": settings.batch_size,
        "channels_per_chunk": settings.channels_per_chunk,
        "cache_drain_fraction": settings.cache_drain_fraction,
        "fetch_stop_fraction": settings.fetch_stop_fraction,
        "extraction_stop_fraction": settings.extraction_stop_fraction,
        "completeness_threshold": settings.completeness_threshold,
        "max_programmes_per_channel": settings.max_programmes_per_channel,
        "enrichment_enabled": container.listings.enrichment is not None,
        "outage_response": settings.outage_response,
    }
    diagnostics["scheduler"] = {
        "running": container.scheduler.running,
        "next_warmup": next_run.isoformat() if next_run else None,
    }
    diagnostics["timestamp"] = datetime.now(timezone.utc).isoformat()
    return diagnostics


@main_router.get("/refresh")
async def refresh(container: Annotated[ServiceContainer, Depends(get_container)]) -> PlainTextResponse:
    """Clear both response tiers and the channel cache"""
    logger.info("Cache refresh triggered via API")
    container.listings.clear_all()
    return PlainTextResponse("All caches cleared")


def _listing_headers(result: ListingsResult) -> dict[str, str]:
    headers = {
        "X-Cache": result.cache_status,
        "X-Build-Type": result.build_type,
        "X-Channel-Count": str(result.channel_count),
        "X-Programme-Count": str(result.programme_count),
    }
    if result.cache_age_seconds is not None:
        headers["X-Cache-Age"] = f"{int(result.cache_age_seconds)}s"
    if result.generation_seconds is not None:
        headers["X-Generation-Time"] = f"{result.generation_seconds:.2f}"
    if result.warning:
        headers["X-Warning"] = result.warning
    return headers


def _outage_response(container: ServiceContainer, message: str) -> Response:
    if container.settings.outage_response == "status":
        return Response(
            content=render_unavailable_document(message),
            status_code=503,
            media_type=XML_MEDIA_TYPE,
            headers={"X-Error": _header_value(message)},
        )

    return Response(
        content=render_error_document(message, container.settings.generator_name, datetime.now(timezone.utc)),
        status_code=200,
        media_type=XML_MEDIA_TYPE,
        headers={"X-Error": _header_value(message), "X-Warning": "Serving error document"},
    )


def _header_value(message: str) -> str:
    """Single-line ASCII rendition of an error message for response headers"""
    single_line = " ".join(message.split())
    ascii_only = single_line.encode("ascii", "replace").decode("ascii")
    return ascii_only[:MAX_HEADER_LENGTH] or "Unknown error"
