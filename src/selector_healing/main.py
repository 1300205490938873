import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.selector_healing.api import healing_endpoints
from src.selector_healing.core.config import settings
from src.selector_healing.core.logging_config import setup_healing_logging

# --- Logging Configuration ---
setup_healing_logging(settings.LOG_LEVEL, settings.LOG_DIR)

# --- FastAPI App ---
app = FastAPI(title="Selector Healing Engine")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- API Router ---
app.include_router(healing_endpoints.router)


@app.on_event("startup")
async def startup_event():
    await healing_endpoints.get_healing_orchestrator()
    logging.info("Application startup complete.")


@app.on_event("shutdown")
async def shutdown_event():
    orchestrator = await healing_endpoints.get_healing_orchestrator()
    await orchestrator.stop()
    healing_endpoints.reset_healing_services()
    logging.info("Application shutdown complete.")
