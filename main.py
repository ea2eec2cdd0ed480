"""
FastAPI backend for the AI landscape designer.

This module wires the web API together: photo redesign and refinement,
image uploads, usage and rate limits, saved projects, designer session
state, Polar checkout and webhooks, and toast notifications over
WebSocket.
"""

import os

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse

from api.shared.logger import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)

from api.checkout import router as checkout_router
from api.database import db_manager
from api.designer import router as designer_router
from api.errors import LandscapeError
from api.identity import (
    ANONYMOUS_ID_HEADER,
    DEVICE_ID_HEADER,
    FINGERPRINT_HEADER,
)
from api.images import router as images_router
from api.projects import router as projects_router
from api.state import router as state_router
from api.system import log_error, mark_startup_complete
from api.system import router as system_router
from api.usage import router as usage_router
from api.webhooks import router as webhooks_router
from notifications import user_channel, ws_manager

# Create FastAPI app
app = FastAPI(
    title="Landscape Designer API",
    description="API for the AI landscape designer: photo redesigns, refinements, projects and subscriptions",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)


# ============= Exception Handlers for Error Logging =============


@app.exception_handler(LandscapeError)
async def landscape_exception_handler(request: Request, exc: LandscapeError):
    """Map domain errors to their HTTP status; log the server-side ones."""
    if exc.status_code >= 500:
        log_error(
            endpoint=str(request.url.path),
            message=exc.message,
            level="error",
            details=type(exc).__name__,
        )
    else:
        logger.info("%s %s: %s", exc.status_code, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Log HTTP exceptions and return JSON response."""
    # Only log 5xx errors (server errors)
    if exc.status_code >= 500:
        log_error(
            endpoint=str(request.url.path),
            message=str(exc.detail),
            level="error",
            details=f"Status code: {exc.status_code}",
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Log unexpected exceptions and return JSON response."""
    log_error(
        endpoint=str(request.url.path),
        message=str(exc),
        level="critical",
        details=f"Unhandled exception: {type(exc).__name__}",
        exc=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Generated identity headers must be readable by the browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[ANONYMOUS_ID_HEADER, DEVICE_ID_HEADER, FINGERPRINT_HEADER],
)


# Include API routes
app.include_router(system_router, prefix="/api", tags=["system"])
app.include_router(designer_router, prefix="/api", tags=["designer"])
app.include_router(images_router, prefix="/api", tags=["images"])
app.include_router(usage_router, prefix="/api", tags=["usage"])
app.include_router(projects_router, prefix="/api", tags=["projects"])
app.include_router(state_router, prefix="/api", tags=["state"])
app.include_router(checkout_router, prefix="/api", tags=["checkout"])
app.include_router(webhooks_router, prefix="/api", tags=["webhooks"])


# ============= Startup Events =============


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("Landscape designer backend starting...")

    try:
        db_manager.ensure_indexes()
    except Exception as e:
        logger.error("Failed to ensure database indexes: %s", e)

    mark_startup_complete()
    logger.info("Startup complete, backend ready")


@app.on_event("shutdown")
async def shutdown_event():
    db_manager.close()


# ============= WebSocket Endpoints =============


async def _serve_connection(websocket: WebSocket, label: str) -> None:
    try:
        while True:
            message_text = await websocket.receive_text()
            response = await ws_manager.handle_message(websocket, message_text)
            if response:
                await ws_manager.send_to_connection(websocket, response)

    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception as e:
        logger.error("%s WebSocket error: %s", label, e)
        await ws_manager.disconnect(websocket)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, client_id: str = None):
    """
    Main WebSocket endpoint for notifications.

    Clients subscribe to ``user:{user_id}`` to receive toasts and usage
    updates.

    Message format (JSON):
    {
        "type": "subscribe" | "unsubscribe" | "ping",
        "channel": "channel_name",
        "data": {}
    }
    """
    await ws_manager.connect(websocket, client_id)
    await _serve_connection(websocket, "Main")


@app.websocket("/ws/user/{user_id}")
async def user_websocket_endpoint(websocket: WebSocket, user_id: str):
    """
    WebSocket endpoint for one user's notifications.

    Automatically subscribes to the user channel on connection.
    """
    await ws_manager.connect(websocket, f"user-{user_id}")
    await ws_manager.subscribe(websocket, user_channel(user_id))
    await _serve_connection(websocket, "User")


@app.get("/api/ws/stats")
async def get_websocket_stats():
    """Get WebSocket connection statistics."""
    return {
        "total_connections": ws_manager.get_connection_count(),
    }


def run() -> None:
    """Command-line entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Landscape designer backend server")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("LANDSCAPE_PORT", 8000)),
        help="Port to run the server on (default: 8000 or LANDSCAPE_PORT env var)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable auto-reload",
    )
    args = parser.parse_args()

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


if __name__ == "__main__":
    run()
