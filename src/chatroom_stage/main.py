# src/chatroom_stage/main.py
"""Main entry point for the Chatroom application."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from chatroom_stage.api.v1 import (
    attachments_router,
    messages_router,
    realtime_router,
    rooms_router,
)
from chatroom_stage.core.settings import settings
from chatroom_stage.services.realtime import get_event_channel

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Real-time direct messaging API",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(rooms_router, prefix="/api/v1")
app.include_router(messages_router, prefix="/api/v1")
app.include_router(attachments_router, prefix="/api/v1")
app.include_router(realtime_router, prefix="/api/v1")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    get_event_channel().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Real-time direct messaging API",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("chatroom_stage.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
