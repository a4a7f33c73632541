# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
FastAPI application – the encrypted vault storage server.

Responsibilities
----------------
* Instantiate the FastAPI app.
* Register CORS, security-header, rate-limit and request-logging
  middleware.
* Mount the file and vault-item routers.
* Translate ``VaultError`` into ``{"error", "code"}`` JSON responses.
* Expose a /health endpoint for liveness probes and client availability
  checks.

Production note
---------------
CORS origins come from ``settings.cors_origins``.  The server keeps no
session state: every request carries the master password and is keyed by
it alone.
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from core.config import settings
from core.exceptions import VaultError
from core.logger import logger
from core.middleware import SecurityHeadersMiddleware
from core.rate_limit import RateLimitMiddleware
from files.router import router as files_router
from vault.router import router as vault_router
from vault.service import VaultFileService, get_file_service

VERSION = "1.0.0"

app = FastAPI(title="Vault Sync Server", version=VERSION)

# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------
# The credential travels in a custom header, which must be allowed
# explicitly for browser clients.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["X-Master-Password", "Content-Type"],
    expose_headers=["X-File-ID", "X-Upload-Date", "Content-Disposition"],
)


# ---------------------------------------------------------------------------
# Request-logging middleware
# ---------------------------------------------------------------------------
# Headers are never echoed: X-Master-Password must not reach the log.
# Clients probe /health before every sync, so those lines go to DEBUG.


class _RequestLogMiddleware(BaseHTTPMiddleware):
    """One line per request: method, path, client, status, body size, latency."""

    async def dispatch(self, request: Request, call_next) -> Response:
        started = time.perf_counter()
        response: Response = await call_next(request)
        latency = (time.perf_counter() - started) * 1000

        level = logging.DEBUG if request.url.path == "/health" else logging.INFO
        logger.log(
            level,
            "%s %s | client=%s status=%d bytes=%s latency=%.1fms",
            request.method,
            request.url.path,
            request.client.host if request.client else "-",
            response.status_code,
            response.headers.get("content-length", "-"),
            latency,
        )
        return response


app.add_middleware(RateLimitMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(_RequestLogMiddleware)


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


@app.exception_handler(VaultError)
async def _vault_error_handler(request: Request, exc: VaultError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(files_router)
app.include_router(vault_router)

# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------


@app.on_event("startup")
async def _on_startup():
    logger.info("Vault Sync server starting up (storage=%s)", settings.storage_dir)


@app.on_event("shutdown")
async def _on_shutdown():
    logger.info("Vault Sync server shutting down")


@app.get("/health")
def health(service: VaultFileService = Depends(get_file_service)):
    """No credential required."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "storage": service.storage_status(),
        "version": VERSION,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
