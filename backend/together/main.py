"""Together Backend Application.

This is the main entry point for the Together backend service, a personal
productivity and social backend with realtime direct and group chat.

Modules:
    - auth: Email/password accounts and bearer tokens
    - users: Profiles, presence and contact connections
    - chat: Conversations, messages, read receipts and the realtime gateway
    - files: Profile and group image storage
    - todos: Per-user todo lists
    - events: Per-user calendar events
    - schedules: Per-user daily schedule slots
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from together.auth.router import router as auth_router
from together.auth.service import TokenStore
from together.chat.gateway import router as gateway_router
from together.chat.router import router as conversations_router
from together.chat.runtime import reset_runtime
from together.chat.store import ConversationStore
from together.config import get_config
from together.errors import TogetherError
from together.events.router import router as events_router
from together.events.service import EventService
from together.files.router import router as files_router
from together.files.service import ImageStorageService
from together.schedules.router import router as schedules_router
from together.schedules.service import ScheduleService
from together.todos.router import router as todos_router
from together.todos.service import TODOService
from together.users.connections import router as connections_router
from together.users.router import router as users_router
from together.users.service import UserStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "multipart",
    "python_multipart",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in together.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    logger.info(f"Server running on http://{config.server.host}:{config.server.port}")

    yield  # Application runs here

    # Shutdown
    reset_runtime()
    ConversationStore.reset_instance()
    UserStore.reset_instance()
    TODOService.reset_instance()
    EventService.reset_instance()
    ScheduleService.reset_instance()
    ImageStorageService.reset_instance()
    TokenStore.reset_instance()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Together API",
    description="Backend service for Together - todos, calendar, contacts and realtime chat",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TogetherError)
async def together_error_handler(request: Request, exc: TogetherError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"success": False, "message": exc.message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return JSONResponse({"success": False, "message": message}, status_code=400)


# Register all routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(connections_router)
app.include_router(conversations_router)
app.include_router(gateway_router)
app.include_router(files_router)
app.include_router(todos_router)
app.include_router(events_router)
app.include_router(schedules_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
