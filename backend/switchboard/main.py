# backend/switchboard/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError, HTTPException
from contextlib import asynccontextmanager
import uvicorn
import time
import logging
import traceback

from switchboard.db.database import init_db, check_db_connection
from switchboard.api.auth import router as auth_router
from switchboard.api.users import router as users_router
from switchboard.api.telephony import router as telephony_router
from switchboard.api.calls import router as calls_router
from switchboard.api.contacts import router as contacts_router
from switchboard.api.websockets import router as websockets_router
from switchboard.core.config import settings
from switchboard.core.presence_hub import PresenceHub
from switchboard.security.error_handlers import error_handler

# Set up logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Silence noisy third-party loggers
logging.getLogger('multipart.multipart').setLevel(logging.WARNING)
logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
logging.getLogger('httpx').setLevel(logging.WARNING)
logging.getLogger('websockets').setLevel(logging.WARNING)
logging.getLogger('twilio.http_client').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"🚀 Starting up {settings.PROJECT_NAME} API...")

    try:
        await init_db()
        logger.info("✅ Database initialized successfully")
    except Exception as e:
        logger.error(f"❌ Database initialization failed: {e}")
        raise

    logger.info("✅ Application startup complete")
    yield

    # Shutdown
    logger.info("🛑 Shutting down application...")
    stats = app.state.presence_hub.get_stats()
    logger.info(f"🔌 Dropping {stats['total_connections']} realtime connection(s)")

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.API_VERSION,
    description="VoIP CRM: users, call presence and browser telephony",
    lifespan=lifespan
)

# One hub per process; handlers reach it through get_presence_hub
app.state.presence_hub = PresenceHub()

# CORS middleware
cors_origins = getattr(settings, 'CORS_ORIGINS', ["http://localhost:5173"])
logger.info(f"🌐 CORS origins: {cors_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests"""
    start_time = time.time()
    client_host = getattr(request.client, 'host', 'unknown') if request.client else 'unknown'

    logger.info(f"📨 HTTP: {request.method} {request.url.path} from {client_host}")

    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.info(f"✅ HTTP response: {response.status_code} ({process_time:.3f}s)")
        return response

    except Exception as e:
        process_time = time.time() - start_time
        logger.error(f"❌ Error processing {request.url.path}: {e} ({process_time:.3f}s)")
        logger.error(f"   Traceback: {traceback.format_exc()}")
        raise

# Secure exception handlers
@app.exception_handler(HTTPException)
async def secure_http_exception_handler(request: Request, exc: HTTPException):
    return await error_handler.handle_http_exception(request, exc)

@app.exception_handler(RequestValidationError)
async def secure_validation_exception_handler(request: Request, exc: RequestValidationError):
    return await error_handler.handle_validation_error(request, exc)

@app.exception_handler(Exception)
async def secure_general_exception_handler(request: Request, exc: Exception):
    return await error_handler.handle_internal_error(request, exc)

# Health endpoints
@app.get("/health")
@app.get("/api/health")
async def health_check():
    """Primary health check endpoint"""
    return {
        "status": "healthy",
        "service": "switchboard-crm",
        "version": settings.API_VERSION,
        "database": await check_db_connection(),
        "realtime": app.state.presence_hub.get_stats(),
        "timestamp": time.time()
    }

# Include routers with logging
logger.info("📋 Registering API routers...")

# (router, prefix, tag); the realtime channel is served at /ws without the API prefix
ROUTERS = [
    (auth_router, "/api", "Authentication"),
    (users_router, "/api", "Users"),
    (telephony_router, "/api", "Telephony"),
    (calls_router, "/api", "Calls"),
    (contacts_router, "/api", "Contacts"),
    (websockets_router, "", "WebSockets"),
]

for router, prefix, tag in ROUTERS:
    try:
        app.include_router(router, prefix=prefix, tags=[tag])
        logger.info(f"✅ {tag} router registered")
    except Exception as e:
        logger.error(f"❌ Failed to register {tag} router: {e}")

if __name__ == "__main__":
    logger.info("🚀 Starting server directly...")
    uvicorn.run(
        "switchboard.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
        log_level=settings.LOG_LEVEL
    )
