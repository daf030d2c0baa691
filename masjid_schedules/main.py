import os
import logging
from datetime import datetime, timezone
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from masjid_schedules.db import Base, engine, ensure_sqlite_schema
from masjid_schedules.api import schedule, screen
from masjid_schedules.services.realtime import hub

API_KEY = os.getenv("MASJID_API_KEY", "").strip()
LOG_LEVEL = os.getenv("MASJID_LOG_LEVEL", "INFO").strip().upper()
QUIET_ACCESS_LOG = os.getenv("MASJID_QUIET_ACCESS_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}
QUIET_WEBSOCKET_LOG = os.getenv("MASJID_QUIET_WEBSOCKET_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

if QUIET_ACCESS_LOG:
    # Keep warning/error lines, suppress normal access noise (200/201 etc).
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

if QUIET_WEBSOCKET_LOG:
    # Screens on flaky networks reconnect on their own; transport traces are noise.
    logging.getLogger("websockets").setLevel(logging.CRITICAL)
    logging.getLogger("uvicorn.protocols.websockets").setLevel(logging.CRITICAL)

logger = logging.getLogger(__name__)

app = FastAPI(title="Masjid content schedules")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        {"detail": {"code": "VALIDATION", "message": "Invalid request", "errors": jsonable_errors(exc)}},
        status_code=400,
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


@app.get("/")
def root():
    return {
        "ok": True,
        "service": "masjid-content-schedules",
        "time_utc": datetime.now(timezone.utc).isoformat(),
        "docs": "/docs",
    }


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.websocket("/ws/updates")
async def ws_updates(websocket: WebSocket, masjid_id: str):
    await hub.connect(masjid_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(masjid_id, websocket)
    except Exception:
        await hub.disconnect(masjid_id, websocket)


@app.on_event("startup")
async def startup_events() -> None:
    Base.metadata.create_all(bind=engine)
    ensure_sqlite_schema(engine)
    logger.info("Schema ready")


@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    if not API_KEY:
        return await call_next(request)
    path = request.url.path
    if path.startswith("/docs") or path.startswith("/openapi.json") or path.startswith("/redoc"):
        return await call_next(request)
    if request.headers.get("X-API-Key") != API_KEY:
        return JSONResponse({"detail": "Unauthorized"}, status_code=401)
    return await call_next(request)


@app.middleware("http")
async def realtime_mutation_middleware(request: Request, call_next):
    response = await call_next(request)
    method = request.method.upper()
    path = request.url.path
    masjid_id = request.query_params.get("masjid_id")
    if response.status_code < 400 and masjid_id and method in {"POST", "PUT", "PATCH", "DELETE"}:
        if path.startswith(("/schedules", "/screens")):
            await hub.publish(
                masjid_id,
                "schedules_changed",
                {
                    "path": path,
                    "method": method,
                },
            )
    return response

app.include_router(schedule.router)
app.include_router(screen.router)
