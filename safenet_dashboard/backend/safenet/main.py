# ==============================================================================
# == backend/safenet/main.py - REST API, push channel & app lifecycle        ==
# ==============================================================================

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import (
    APIRouter, FastAPI, WebSocket, WebSocketDisconnect, Depends,
    HTTPException, Request, status
)
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from . import crud, events, models, schemas
from .config import Settings, configure_logging, get_settings
from .database import InMemoryDatabase, create_database
from .monitoring import HealthMonitor, RateLimiter, sample_host
from .telemetry import TelemetrySimulator
from .websocket import ConnectionManager

logger = logging.getLogger(__name__)


# --- REQUEST ID MIDDLEWARE ---
class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        logger.info(f"--> {request.method} {request.url.path}", extra={'request_id': request_id})

        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        response.headers['X-Request-ID'] = request_id
        logger.info(
            f"<-- {request.method} {request.url.path} - Completed in {process_time:.2f}ms, Status: {response.status_code}",
            extra={'request_id': request_id}
        )

        return response


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Rate limiting plus request timing for the health report."""

    async def dispatch(self, request: Request, call_next):
        monitor: HealthMonitor = request.app.state.health_monitor
        limiter: RateLimiter = request.app.state.rate_limiter
        settings: Settings = request.app.state.settings
        start_time = time.time()

        client_ip = request.client.host if request.client else "unknown"
        if not limiter.is_allowed(client_ip):
            monitor.record_error('rate_limit', f'IP: {client_ip}')
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Too many requests"}
            )

        try:
            response = await call_next(request)
            duration_ms = (time.time() - start_time) * 1000
            monitor.record_request(duration_ms)

            if duration_ms > settings.SLOW_REQUEST_MS:
                logger.warning(f"Slow request: {request.url.path} took {duration_ms:.2f}ms")

            return response

        except Exception as e:
            monitor.record_error('request_error', str(e))
            logger.error(f"Request error: {e}", exc_info=True)
            raise


async def cleanup_rate_limiter(limiter: RateLimiter, every_seconds: float):
    while True:
        await asyncio.sleep(every_seconds)
        dropped = limiter.cleanup()
        logger.debug(f"Rate limiter cleanup dropped {dropped} idle client(s)")


# === LIFESPAN ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Builds the store, the notifier and the simulator; tears them down on exit."""
    settings: Settings = app.state.settings
    logger.info("Application starting...")

    db = create_database(seed=settings.SEED_DEFAULT_DATA)
    manager = ConnectionManager()
    simulator = TelemetrySimulator(db, manager, interval=settings.STATS_INTERVAL_SECONDS)

    app.state.db = db
    app.state.manager = manager
    app.state.simulator = simulator

    tasks = []
    try:
        if settings.TELEMETRY_ENABLED:
            simulator.start()
        tasks.append(asyncio.create_task(
            cleanup_rate_limiter(app.state.rate_limiter, settings.RATE_LIMIT_CLEANUP_SECONDS)
        ))
        logger.info("Background tasks started")

        yield

    finally:
        logger.info("Application shutting down...")

        await simulator.stop()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        manager.shutdown()
        db.shutdown()
        logger.info("Shutdown complete")


# === DEPENDENCIES ===
def get_db(request: Request) -> InMemoryDatabase:
    return request.app.state.db


def get_manager(request: Request) -> ConnectionManager:
    return request.app.state.manager


router = APIRouter()


# === DEVICE ENDPOINTS ===
@router.get("/devices", response_model=list[models.Device])
async def list_devices(db: InMemoryDatabase = Depends(get_db)):
    return await crud.get_devices(db)


@router.get("/devices/{device_id}", response_model=models.Device)
async def get_device(device_id: str, db: InMemoryDatabase = Depends(get_db)):
    device = await crud.get_device(db, device_id)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return device


@router.post("/devices", response_model=models.Device)
async def create_device(
    device_data: schemas.DeviceCreate,
    db: InMemoryDatabase = Depends(get_db),
    manager: ConnectionManager = Depends(get_manager)
):
    device = await crud.create_device(db, device_data.changes())
    logger.info(f"Device '{device.name}' added ({device.id})")
    await manager.publish(events.device_added(device))
    return device


@router.patch("/devices/{device_id}", response_model=models.Device)
async def update_device(
    device_id: str,
    updates: schemas.DeviceUpdate,
    db: InMemoryDatabase = Depends(get_db),
    manager: ConnectionManager = Depends(get_manager)
):
    # status and isBlocked are stored exactly as sent; neither implies the other
    device = await crud.update_device(db, device_id, updates.changes())
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    await manager.publish(events.device_updated(device))
    return device


@router.delete("/devices/{device_id}", response_model=schemas.DeleteResponse)
async def delete_device(
    device_id: str,
    db: InMemoryDatabase = Depends(get_db),
    manager: ConnectionManager = Depends(get_manager)
):
    if not await crud.delete_device(db, device_id):
        raise HTTPException(status_code=404, detail="Device not found")
    logger.info(f"Device '{device_id}' removed")
    await manager.publish(events.device_deleted(device_id))
    return {"success": True}


# === SECURITY EVENT ENDPOINTS ===
@router.get("/security/events", response_model=list[models.SecurityEvent])
async def list_security_events(db: InMemoryDatabase = Depends(get_db)):
    return await crud.get_security_events(db)


@router.post("/security/events", response_model=models.SecurityEvent)
async def create_security_event(
    event_data: schemas.SecurityEventCreate,
    db: InMemoryDatabase = Depends(get_db),
    manager: ConnectionManager = Depends(get_manager)
):
    event = await crud.create_security_event(db, event_data.changes())
    logger.info(f"Security event '{event.title}' ({event.severity}) recorded")
    await manager.publish(events.security_event(event))
    return event


@router.patch("/security/events/{event_id}/read", response_model=models.SecurityEvent)
async def mark_event_as_read(event_id: str, db: InMemoryDatabase = Depends(get_db)):
    event = await crud.mark_event_as_read(db, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


# === PARENTAL PROFILE ENDPOINTS ===
# profile changes are not pushed to UI clients
@router.get("/parental/profiles", response_model=list[models.ParentalProfile])
async def list_parental_profiles(db: InMemoryDatabase = Depends(get_db)):
    return await crud.get_parental_profiles(db)


@router.get("/parental/profiles/{profile_id}", response_model=models.ParentalProfile)
async def get_parental_profile(profile_id: str, db: InMemoryDatabase = Depends(get_db)):
    profile = await crud.get_parental_profile(db, profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.post("/parental/profiles", response_model=models.ParentalProfile)
async def create_parental_profile(
    profile_data: schemas.ParentalProfileCreate,
    db: InMemoryDatabase = Depends(get_db)
):
    return await crud.create_parental_profile(db, profile_data.changes())


@router.patch("/parental/profiles/{profile_id}", response_model=models.ParentalProfile)
async def update_parental_profile(
    profile_id: str,
    updates: schemas.ParentalProfileUpdate,
    db: InMemoryDatabase = Depends(get_db)
):
    profile = await crud.update_parental_profile(db, profile_id, updates.changes())
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.delete("/parental/profiles/{profile_id}", response_model=schemas.DeleteResponse)
async def delete_parental_profile(profile_id: str, db: InMemoryDatabase = Depends(get_db)):
    if not await crud.delete_parental_profile(db, profile_id):
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"success": True}


# === NETWORK ENDPOINTS ===
@router.get("/network/settings", response_model=models.NetworkSettings)
async def get_network_settings(db: InMemoryDatabase = Depends(get_db)):
    return await crud.get_network_settings(db)


@router.patch("/network/settings", response_model=models.NetworkSettings)
async def update_network_settings(
    updates: schemas.NetworkSettingsUpdate,
    db: InMemoryDatabase = Depends(get_db),
    manager: ConnectionManager = Depends(get_manager)
):
    settings = await crud.update_network_settings(db, updates.changes())
    await manager.publish(events.settings_updated(settings))
    return settings


@router.get("/network/stats", response_model=models.NetworkStats)
async def get_network_stats(db: InMemoryDatabase = Depends(get_db)):
    return await crud.get_network_stats(db)


@router.get("/network/port-forward", response_model=list[models.PortForwardRule])
async def list_port_forward_rules(db: InMemoryDatabase = Depends(get_db)):
    return await crud.get_port_forward_rules(db)


@router.post("/network/port-forward", response_model=models.PortForwardRule)
async def create_port_forward_rule(
    rule_data: schemas.PortForwardRuleCreate,
    db: InMemoryDatabase = Depends(get_db)
):
    return await crud.create_port_forward_rule(db, rule_data.changes())


@router.delete("/network/port-forward/{rule_id}", response_model=schemas.DeleteResponse)
async def delete_port_forward_rule(rule_id: str, db: InMemoryDatabase = Depends(get_db)):
    if not await crud.delete_port_forward_rule(db, rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    return {"success": True}


# === WEBSOCKET ===
async def ui_websocket_endpoint(websocket: WebSocket):
    manager: ConnectionManager = websocket.app.state.manager
    try:
        await manager.connect(websocket)
        # server -> client only; anything the client sends is dropped
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("UI client disconnected.")
    except Exception as e:
        logger.error(f"UI WebSocket failed: {e}", exc_info=True)
    finally:
        manager.unsubscribe(websocket)


# === HEALTH ===
health_router = APIRouter()


async def _health_report(request: Request) -> dict:
    app_state = request.app.state
    settings: Settings = app_state.settings
    checks = {
        'store_open': app_state.db.is_open,
        'telemetry': app_state.simulator.running or not settings.TELEMETRY_ENABLED,
    }
    host = await run_in_threadpool(sample_host)
    return app_state.health_monitor.build_report(
        checks,
        host,
        websocket_connections=len(app_state.manager.active_connections),
        pending_sends=app_state.manager.pending_sends,
        telemetry_running=app_state.simulator.running,
    )


@health_router.get("/health")
async def simple_health_check(request: Request):
    report = await _health_report(request)
    if report['status'] == 'healthy':
        return {"status": "ok"}

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "degraded", "details": report}
    )


@health_router.get("/health/detailed")
async def detailed_health_check(request: Request):
    return await _health_report(request)


@health_router.get("/health/errors")
async def recent_errors(request: Request):
    monitor: HealthMonitor = request.app.state.health_monitor
    return {
        "errors": monitor.get_recent_errors(),
        "total_errors": monitor.error_count
    }


# === EXCEPTION HANDLERS ===
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get('loc', ()) if part != 'body']
        errors.append(schemas.FieldError(
            field=".".join(loc) or "body",
            message=error.get('msg', ''),
            type=error.get('type', ''),
        ))
    logger.info(f"Rejected {request.method} {request.url.path}: {len(errors)} invalid field(s)")
    body = schemas.ValidationErrorResponse(message="Invalid request data", errors=errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=body.model_dump()
    )


async def global_exception_handler(request: Request, exc: Exception):
    request.app.state.health_monitor.record_error('unhandled_exception', str(exc))

    logger.error(
        f"Unhandled exception: {str(exc)}",
        exc_info=True,
        extra={
            'path': request.url.path,
            'method': request.method,
        }
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "timestamp": time.time()
        }
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.state.health_monitor = HealthMonitor()
    app.state.rate_limiter = RateLimiter(
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS
    )

    app.include_router(router, prefix=settings.API_PREFIX)
    app.include_router(health_router)
    app.add_api_websocket_route(settings.WS_PATH, ui_websocket_endpoint)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(MonitoringMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app


app = create_app()
