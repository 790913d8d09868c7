"""FastAPI application entry point."""
from fastapi import FastAPI

from training_engine.logging_config import configure_logging
from training_engine.routers import analytics, health


configure_logging()

app = FastAPI(title="Training Analytics Engine API")


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Simple health probe for liveness checks."""
    return {"status": "ok"}


# Include routers
app.include_router(health.router)
app.include_router(analytics.router)


if __name__ == "__main__":
    import uvicorn

    from training_engine.config import get_settings

    settings = get_settings()
    uvicorn.run(app, host=settings.app_host, port=settings.app_port)
