from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.middleware.cors import CORSMiddleware
import logging
import sys

from grid_command_center.routers import agent
from grid_command_center.routers import audit
from grid_command_center.routers import auto_activation
from grid_command_center.routers import der
from grid_command_center.routers import feeders
from grid_command_center.routers import health
from grid_command_center.services import AutoActivationMonitor, LoadSimulator
from grid_command_center.core.config import settings
from grid_command_center.db.database import async_session, init_models
from grid_command_center.dependencies import close_gateway, get_grid_state


# Configure logging first
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("uvicorn")

# Background services share the grid state served to the routers
grid_state = get_grid_state()
load_simulator = LoadSimulator(grid_state, config=settings)
auto_activation_monitor = AutoActivationMonitor(
    grid_state, config=settings, session_factory=async_session
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Creating audit tables...")
    await init_models()

    logger.info("Starting load simulator...")
    await load_simulator.start()
    logger.info("Load simulator started")

    logger.info("Starting auto-activation monitor...")
    await auto_activation_monitor.start()
    logger.info("Auto-activation monitor started")

    yield

    # Shutdown
    logger.info("Stopping auto-activation monitor...")
    await auto_activation_monitor.stop()
    logger.info("Auto-activation monitor stopped")

    logger.info("Stopping load simulator...")
    await load_simulator.stop()
    logger.info("Load simulator stopped")

    await close_gateway()
    grid_state.reset()


app = FastAPI(
    title="Grid Command Center API",
    version="0.1.0",
    docs_url=None,
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Dashboard origins only
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(feeders.router, prefix="/api/feeders", tags=["Feeders"])
app.include_router(der.router, prefix="/api/der", tags=["DER"])
app.include_router(auto_activation.router, prefix="/api", tags=["Auto-Activation"])
app.include_router(agent.router, prefix="/api/agent", tags=["Agent"])
app.include_router(audit.router, prefix="/api/audit-logs", tags=["Audit"])


# Custom docs endpoint
@app.get("/docs", include_in_schema=False)
async def custom_swagger_ui_html():
    return get_swagger_ui_html(openapi_url=app.openapi_url, title=app.title)
