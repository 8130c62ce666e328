"""
MerchForge API - Main FastAPI Application Entry Point

Conversational merch configurator: customization chat, design variants,
inventory discovery, a server-side cart, and a demo offer/order flow.
Combines all routers and middleware into a single FastAPI application.

Run with:
    uvicorn merchforge.api.main:app --app-dir backend --host 0.0.0.0 --port 8000
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from merchforge.api.routes_cart import router as cart_router
from merchforge.api.routes_chat import router as chat_router
from merchforge.api.routes_commerce import router as commerce_router
from merchforge.api.routes_discover import router as discover_router
from merchforge.api.routes_wellknown import router as wellknown_router
from merchforge.config import ALLOWED_ORIGINS, LOG_LEVEL
from merchforge.storage.cart import CartStore
from merchforge.storage.commerce_store import CommerceStore

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Emit ``merchforge.*`` records at *level* under uvicorn or when run directly."""
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger("merchforge").setLevel(level.upper())


configure_logging()

app = FastAPI(
    title="MerchForge API",
    description="Conversational custom merch configurator",
    version="0.1.0",
)

# One offer/order store and one cart per process, injected into their routes
app.state.commerce_store = CommerceStore()
app.state.cart_store = CartStore()

# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials="*" not in ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Global exception handler
# ---------------------------------------------------------------------------
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions and return structured JSON error responses."""
    error_type = type(exc).__name__

    status_code = 500
    message = "An unexpected error occurred."
    if isinstance(exc, ValueError):
        status_code = 400
        message = "Invalid request. Please check the data."
    elif isinstance(exc, LookupError):
        status_code = 404
        message = "Not found."

    logger.error("[api] %s: %s | Path: %s", error_type, exc, request.url.path)

    return JSONResponse(
        status_code=status_code,
        content={
            "error": error_type,
            "message": message,
            "detail": str(exc) if status_code < 500 else None,
        },
    )


# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(chat_router)
app.include_router(discover_router)
app.include_router(commerce_router)
app.include_router(cart_router)
app.include_router(wellknown_router)


# ---------------------------------------------------------------------------
# Root & health-check endpoints
# ---------------------------------------------------------------------------
@app.get("/")
async def root():
    """Root endpoint returning basic API information."""
    return {
        "name": "MerchForge API",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring and load balancers."""
    return {"status": "healthy"}


# ---------------------------------------------------------------------------
# Convenience: run directly with `python -m merchforge.api.main`
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn

    uvicorn.run("merchforge.api.main:app", host="0.0.0.0", port=8000, reload=True)
