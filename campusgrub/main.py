# campusgrub/main.py
from contextlib import asynccontextmanager
import logging

from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from campusgrub.core.config import get_settings
from campusgrub.core.exceptions import OrderServiceError
from campusgrub.core.realtime import get_hub
from campusgrub.core.realtime_bridge import SupabaseRealtimeBridge
from campusgrub.database import create_db_and_tables

# Import models so SQLModel metadata is populated before create_all()
from campusgrub.models import order as _order_models  # noqa: F401
from campusgrub.models import notification as _notification_models  # noqa: F401


# Routers
from campusgrub.routers.orders import router as orders_router
from campusgrub.routers.notifications import router as notifications_router
from campusgrub.routers.admin_orders import router as admin_orders_router
from campusgrub.routers.realtime import router as realtime_router

settings = get_settings()

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Verify DB connectivity and create tables.
      - Optionally bridge Supabase realtime into the in-process hub.

    Shutdown:
      - Remove the Supabase realtime channel.
    """
    logger.info("🔄 Startup: Connecting to Supabase Postgres...")
    try:
        create_db_and_tables()
        logger.info("✅ Startup: DB connection OK, tables verified.")
    except Exception as e:
        logger.error(f"❌ Startup: DB connection FAILED: {e}")
        raise

    bridge = None
    if settings.REALTIME_BRIDGE_ENABLED:
        bridge = SupabaseRealtimeBridge(get_hub())
        try:
            await bridge.start()
            logger.info("✅ Startup: Supabase realtime bridge connected.")
        except Exception as e:
            # Local writes still fan out; only external writers are missed
            logger.error(f"❌ Startup: realtime bridge FAILED: {e}")
            bridge = None

    yield

    if bridge is not None:
        await bridge.stop()


app = FastAPI(
    title=settings.PROJECT_NAME or "CampusGrub Orders API",
    version="0.1.0",
    lifespan=lifespan,
)


# --- CORS configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    """
    Permanent errors name the violated rule; transient ones ask for a retry.
    """
    body = {"detail": exc.message, "error": exc.code}
    if exc.details:
        body["context"] = exc.details
    if exc.retryable:
        body["retry"] = True
    return JSONResponse(status_code=exc.status_code, content=body)


# Versioned API prefix, e.g. /api/v1
app.include_router(orders_router, prefix=settings.API_V1_STR)
app.include_router(notifications_router, prefix=settings.API_V1_STR)
app.include_router(admin_orders_router, prefix=settings.API_V1_STR)
app.include_router(realtime_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "campusgrub-orders"}
