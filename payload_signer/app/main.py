import sys
import logging

from contextlib import asynccontextmanager
from importlib.metadata import version, PackageNotFoundError
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException as StarletteHTTPException

from payload_signer.app.api.responses import CanonicalJSONResponse, error_response
from payload_signer.app.api.routes import (
    resolve_correlation_id,
    router as mac_router,
)
from payload_signer.app.core.config import Settings, get_settings
from payload_signer.app.core.context import AppContext, build_app_context
from payload_signer.app.core.errors import PayloadSignerError

logger = logging.getLogger("payload_signer.main")


def get_app_version() -> str:
    """
    Resolve application version deterministically.

    Falls back to the source version when the package is not installed.
    """
    try:
        return version("payload-signer")
    except PackageNotFoundError:
        return "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Guarantees:
    - Fail-fast startup if configuration or Google auth is invalid
    - One shared collaborator handle for the process lifetime
    - Idempotent shutdown of the shared transport
    """
    if getattr(app.state, "context", None) is not None:
        # Prebuilt context supplied to create_app(); caller owns it
        yield
        return

    logger.info(
        "payload_signer_startup_begin",
        extra={
            "service": "payload-signer",
            "version": get_app_version(),
        },
    )

    # ------------------------------------------------------------------
    # Load and validate configuration (FAIL FAST)
    # ------------------------------------------------------------------
    try:
        settings = Settings()
    except Exception:
        logger.exception("invalid_payload_signer_configuration")
        raise

    context = await build_app_context(settings)
    app.state.context = context

    logger.info(
        "payload_signer_startup_complete",
        extra={
            "mac_backend": settings.mac_backend,
            "key_version": context.key_version_name,
        },
    )

    try:
        yield
    finally:
        logger.info("payload_signer_shutdown_begin")

        try:
            await context.aclose()
        except Exception:
            logger.warning("http_client_shutdown_failed")


# ----------------------------------------------------------------------
# Exception mapping
# ----------------------------------------------------------------------

async def payload_signer_error_handler(
    request: Request,
    exc: PayloadSignerError,
) -> CanonicalJSONResponse:
    trace_id = resolve_correlation_id(request)
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_failed",
        extra={
            "trace_id": trace_id,
            "path": request.url.path,
            "status_code": exc.status_code,
            "error_type": type(exc).__name__,
        },
    )
    return error_response(
        exc.message,
        exc.status_code,
        headers={"X-Correlation-ID": trace_id},
    )


async def http_error_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> CanonicalJSONResponse:
    headers = dict(exc.headers or {})
    headers["X-Correlation-ID"] = resolve_correlation_id(request)
    return error_response(str(exc.detail), exc.status_code, headers=headers)


async def unhandled_error_handler(
    request: Request,
    exc: Exception,
) -> CanonicalJSONResponse:
    trace_id = resolve_correlation_id(request)
    logger.exception(
        "unhandled_request_failure",
        extra={
            "trace_id": trace_id,
            "path": request.url.path,
            "error_type": type(exc).__name__,
        },
    )
    return error_response(
        "Internal server error",
        500,
        headers={"X-Correlation-ID": trace_id},
    )


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Application factory for the payload signer.

    When ``context`` is given it is used as-is and the lifespan skips
    configuration loading and backend construction.
    """
    app = FastAPI(
        title="Payload Signer",
        description=(
            "MAC signing and verification of canonical JSON payloads "
            "using Cloud KMS."
        ),
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        default_response_class=CanonicalJSONResponse,
        lifespan=lifespan,
    )

    if context is not None:
        app.state.context = context

    app.add_exception_handler(PayloadSignerError, payload_signer_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(mac_router)

    @app.get(
        "/healthz",
        tags=["Monitoring"],
        summary="Liveness and readiness probe",
    )
    async def health_check() -> CanonicalJSONResponse:
        """
        Verifies that the runtime is alive.

        NOTE:
        - Does NOT call the key-management service
        """
        return CanonicalJSONResponse(
            content={
                "status": "ok",
                "service": "payload-signer",
                "version": app.version,
                "runtime": f"python {sys.version.split()[0]}",
            }
        )

    return app


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logger.info("listening", extra={"host": settings.host, "port": settings.port})
    uvicorn.run(
        "payload_signer.app.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


app = create_app()


if __name__ == "__main__":
    run()
