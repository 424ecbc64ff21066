"""FastAPI application for the GetServed escrow backend.

This package provides REST endpoints for:
- Bookings (create, read)
- Customer payment history
- Escrow payment handlers (initiate, verify, mark-complete, release, refund)
- Paystack webhooks
- Provider identity verification and earnings

The same app runs locally under uvicorn and on AWS Lambda behind API Gateway
through Mangum.
"""

import os
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from getserved import __version__
from getserved.config import get_settings
from getserved.utils.logging import configure_logging, get_logger
from getserved_api.exceptions import register_exception_handlers
from getserved_api.middleware.correlation import CORRELATION_ID_HEADER, CorrelationIdMiddleware
from getserved_api.routes import (
    bookings_router,
    customers_router,
    payments_router,
    providers_router,
    webhooks_router,
)

configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = get_logger(__name__)

app = FastAPI(
    title="GetServed Escrow API",
    description="Booking payments held in escrow until customer and provider both confirm completion",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[CORRELATION_ID_HEADER],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

# Include routers under /api prefix
# This matches CloudFront routing: /api/* → API Gateway
app.include_router(bookings_router, prefix="/api")
app.include_router(payments_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")
app.include_router(providers_router, prefix="/api")
app.include_router(customers_router, prefix="/api")


@app.get("/api/ping")
async def ping() -> dict[str, Any]:
    """Health check endpoint at /api/ping."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "getserved-api",
        "version": __version__,
    }


# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "getserved_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["api/src", "shared/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
