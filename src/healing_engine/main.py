import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.healing_endpoints import router as healing_router, shutdown_services
from .core.config import settings
from .core.logging_config import setup_healing_logging

# --- FastAPI App ---
app = FastAPI(title="Selector Healing Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- API Router ---
app.include_router(healing_router)


@app.on_event("startup")
async def startup_event():
    setup_healing_logging(settings.LOG_LEVEL, settings.LOG_DIR)
    logging.info(f"Healing service started (provider: {settings.MODEL_PROVIDER}, "
                 f"locators: {settings.LOCATORS_DIR})")


@app.on_event("shutdown")
async def shutdown_event():
    await shutdown_services()
    logging.info("Healing service shutdown complete.")


def run():
    """Run the service with uvicorn on APP_PORT."""
    uvicorn.run("healing_engine.main:app", host="0.0.0.0", port=settings.APP_PORT)


if __name__ == "__main__":
    run()
