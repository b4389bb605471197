"""VID Verifier FastAPI application."""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from app.core import config
from app.logging_config import configure_logging
from app.vid.api_models import PresentationCallbackRequest, StartFlowRequest
from app.vid.caller_callback import close_caller_callback_client
from app.vid.dispatch import get_dispatcher
from app.vid.exceptions import AccessTokenError, PresentationRequestError, UnknownRequestError
from app.vid.notifications import close_notification_center
from app.vid.presentation import PresentationService, get_presentation_service
from app.vid.request_service import close_request_service_client
from app.vid.request_store import get_request_store
from app.vid.token import close_token_provider

configure_logging()
log = logging.getLogger("vid")


async def _request_store_cleanup_task():
    """Periodically drop expired request contexts."""
    while True:
        await asyncio.sleep(config.VID_CACHE_SWEEP_INTERVAL)
        try:
            count = await get_request_store().backing_store.cleanup_expired()
            if count > 0:
                log.debug(f"Request store cleanup: removed {count} expired contexts")
        except Exception as e:
            log.error(f"Request store cleanup error: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    log.info("Starting VID Verifier service...")
    for name in config.missing_settings():
        log.warning(f"Setting {name} is not configured")

    cleanup_task = asyncio.create_task(_request_store_cleanup_task())
    log.info(f"Request store cleanup task started (interval: {config.VID_CACHE_SWEEP_INTERVAL}s)")

    yield

    log.info("Shutting down VID Verifier service...")
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    # Let in-flight notifications and caller callbacks finish
    await get_dispatcher().drain()

    await close_caller_callback_client()
    await close_notification_center()
    await close_request_service_client()
    await close_token_provider()
    log.info("VID Verifier service stopped")


app = FastAPI(
    title="VID Verifier",
    version="0.1.0",
    description="Verified ID presentation requests with caller callbacks",
    lifespan=lifespan,
)


@app.middleware("http")
async def req_log(request: Request, call_next):
    start = time.time()
    route = request.url.path
    remote = request.client.host if request.client else "-"
    resp = await call_next(request)
    duration_ms = int((time.time() - start) * 1000)
    log.info(f"request_complete status={resp.status_code} duration_ms={duration_ms}",
             extra={"request_id": "-", "route": route, "remote_addr": remote})
    return resp


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/version")
def version():
    # GIT_SHA is injected at deploy time
    return {"git_sha": os.getenv("GIT_SHA", "unknown")}


@app.post("/api/createPresentationRequest")
async def create_presentation_request(
    request: Request,
    service: PresentationService = Depends(get_presentation_service),
):
    """Start a Verified ID presentation for a caller.

    Returns the request id and the deep link for the wallet. The QR code and
    expiry are kept server-side.
    """
    log.info("CreatePresentationRequest triggered")
    try:
        start_request = StartFlowRequest.model_validate_json(await request.body())
    except ValidationError as e:
        log.error(f"Invalid CreatePresentationRequest: {e}")
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid CreatePresentationRequest."},
        )

    try:
        created = await service.create_presentation_request(start_request)
    except AccessTokenError as e:
        log.error(f"Failed to obtain access token: {e}")
        return JSONResponse(status_code=500, content={"detail": "Failed to obtain access token"})
    except PresentationRequestError as e:
        log.error(f"Failed to create presentation request: {e}")
        return JSONResponse(status_code=500, content={"detail": "Failed to create presentation request"})

    log.info(
        f"CreatePresentationRequest completed. RequestId: {created.request_id} "
        f"RequestUrl: {created.url}"
    )
    return JSONResponse(created.for_caller())


@app.post("/api/callback")
async def presentation_callback(
    request: Request,
    service: PresentationService = Depends(get_presentation_service),
):
    """Receive presentation events from the Verified ID request service.

    Acknowledges as soon as the status is recorded. The caller callback and
    notifications for verified presentations are delivered afterwards.
    """
    try:
        callback = PresentationCallbackRequest.model_validate_json(await request.body())
    except ValidationError as e:
        log.error(f"Invalid PresentationCallback object: {e}")
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid PresentationCallback object."},
        )

    try:
        await service.handle_callback(callback)
    except UnknownRequestError as e:
        log.error(f"Failed to get expiration for request '{e.request_id}'")
        return JSONResponse(status_code=500, content={"detail": "Unknown presentation request"})

    return Response(status_code=200)


@app.get("/admin")
def admin():
    """Return configuration and runtime state for operator visibility.

    Gated by ADMIN_ENDPOINT_ENABLED (default: True for dev, False for prod).
    """
    if not config.ADMIN_ENDPOINT_ENABLED:
        return JSONResponse(
            status_code=404,
            content={"detail": "Admin endpoint disabled"}
        )

    store = get_request_store().backing_store
    return {
        "protocol": {
            "status_request_created": config.STATUS_REQUEST_CREATED,
            "status_presentation_verified": config.STATUS_PRESENTATION_VERIFIED,
            "retention_grace_seconds": config.RETENTION_GRACE_SECONDS,
            "default_caller_name": config.DEFAULT_CALLER_NAME,
        },
        "identity": {
            "tenant_id": config.VID_TENANT_ID,
            "client_id": config.VID_CLIENT_ID,
            "client_secret_configured": bool(config.VID_CLIENT_SECRET),
            "key_vault_url": config.VID_KEY_VAULT_URL,
            "client_secret_name": config.VID_CLIENT_SECRET_NAME,
            "client_api_resource": config.VID_CLIENT_API_RESOURCE,
        },
        "endpoints": {
            "request_service_url": config.VID_REQUEST_SERVICE_URL,
            "default_authority": config.VID_DEFAULT_AUTHORITY,
            "default_credential_type": config.VID_DEFAULT_CREDENTIAL_TYPE,
            "callback_url": config.callback_url(),
            "notifications_enabled": bool(config.VID_TEAMS_NOTIFICATIONS_ENDPOINT),
        },
        "operational": {
            "http_timeout_seconds": config.VID_HTTP_TIMEOUT,
            "cache_sweep_interval_seconds": config.VID_CACHE_SWEEP_INTERVAL,
            "missing_settings": config.missing_settings(),
        },
        "environment": {
            "log_level": logging.getLogger().getEffectiveLevel(),
            "log_level_name": logging.getLevelName(logging.getLogger().getEffectiveLevel()),
        },
        "request_store": {
            "size": store.size,
            "metrics": store.metrics().to_dict(),
        },
        "background_tasks": {
            "pending": get_dispatcher().pending,
        },
    }


class LogLevelRequest(BaseModel):
    level: str


@app.post("/admin/log-level")
def set_log_level(req: LogLevelRequest):
    """Change log level at runtime (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Gated by ADMIN_ENDPOINT_ENABLED.
    """
    if not config.ADMIN_ENDPOINT_ENABLED:
        return JSONResponse(
            status_code=404,
            content={"detail": "Admin endpoint disabled"}
        )

    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level_upper = req.level.upper()

    if level_upper not in valid_levels:
        return JSONResponse(
            status_code=400,
            content={"detail": f"Invalid log level. Must be one of: {valid_levels}"}
        )

    logging.getLogger().setLevel(getattr(logging, level_upper))
    logging.getLogger("vid").setLevel(getattr(logging, level_upper))

    log.info(f"Log level changed to {level_upper}")

    return {
        "success": True,
        "log_level": level_upper,
        "message": f"Log level set to {level_upper}"
    }
