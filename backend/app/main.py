"""FastAPI application."""

from fastapi import FastAPI

from backend.app.api.errors import register_error_handlers
from backend.app.api.routes.entries import router as entries_router
from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.api.routes.trips import router as trips_router

app = FastAPI(title="Trip Timeline API", version="0.1.0")

register_error_handlers(app)

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(trips_router)
app.include_router(entries_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Trip Timeline API", "version": "0.1.0"}
