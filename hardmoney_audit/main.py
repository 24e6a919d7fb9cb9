import os
import subprocess
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hardmoney_audit.config.logger import app_logger, log_request_start, log_request_end, log_request_error
from hardmoney_audit.config.settings import settings
from hardmoney_audit.db.audit_store import ping_store
from hardmoney_audit.db.db import close_db, init_db
from hardmoney_audit.api.audit.router import router as audit_router
from hardmoney_audit.api.collector.router import router as collector_router
from hardmoney_audit.services.audit_delivery import build_delivery
from hardmoney_audit.services.audit_ledger import AuditLedger, AuditLedgerError
from hardmoney_audit.utils.responses import error_response


_git_sha_cache: Optional[str] = None


def get_git_sha() -> str:
    """Get the current Git commit SHA (cached to avoid blocking)."""
    global _git_sha_cache
    if _git_sha_cache is not None:
        return _git_sha_cache

    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=1.0
        )
        _git_sha_cache = result.stdout.strip()[:8]
        return _git_sha_cache
    except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
        _git_sha_cache = "local-dev"
        return _git_sha_cache


def create_app(ledger: Optional[AuditLedger] = None, init_store: bool = True) -> FastAPI:
    """Build the API application.

    Args:
        ledger: Ledger to serve; when omitted the lifespan builds one from
            settings together with its delivery worker.
        init_store: Initialize the SQL audit store on startup when it is
            the configured backend.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Own the ledger and delivery worker for the lifetime of the app."""
        app_logger.info(f"{settings.APP_NAME} starting up")

        if ledger is None:
            audit_ledger = AuditLedger(delivery=build_delivery())
        else:
            audit_ledger = ledger
        app.state.audit_ledger = audit_ledger

        delivery = audit_ledger.delivery
        if delivery is not None:
            delivery.start()

        if init_store and settings.effective_store_backend == "sql":
            try:
                await init_db()
            except Exception as e:
                app_logger.warning(f"Audit SQL store unavailable: {e}")
                app_logger.warning("Collector writes will fail until the database is reachable.")
        else:
            app_logger.info(f"Audit store backend: {settings.effective_store_backend}")

        app_logger.info(f"Audit ledger ready (capacity {audit_ledger.max_events} events, strict actions: {audit_ledger.strict_actions})")

        yield

        app_logger.info(f"{settings.APP_NAME} shutting down")
        if delivery is not None:
            delivery.stop(drain=True)
        await close_db()
        app_logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        servers=[
            {
                "url": "http://localhost:8000",
                "description": "Development server",
            },
        ],
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Add PRODUCTION DOMAINS HERE
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests with timing information using Loguru."""
        start_time = datetime.now()
        log_request_start(request)

        try:
            response = await call_next(request)
            process_time = (datetime.now() - start_time).total_seconds()
            log_request_end(request, response.status_code, process_time)
            return response

        except Exception as e:
            process_time = (datetime.now() - start_time).total_seconds()
            log_request_error(request, e, process_time)
            raise

    @app.exception_handler(AuditLedgerError)
    async def audit_ledger_error_handler(request: Request, exc: AuditLedgerError):
        app_logger.warning(f"Audit ledger error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=400,
            content=error_response(error="Audit ledger error", detail=str(exc)).model_dump(mode="json"),
        )

    @app.get("/", tags=["health"])
    async def root():
        """Root endpoint with basic API information."""
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.APP_VERSION,
            "status": "operational",
            "store": settings.effective_store_backend,
            "docs": "/docs",
            "redoc": "/redoc"
        }

    @app.get("/status", tags=["health"])
    async def status():
        """Status endpoint with build information for CI/CD monitoring."""
        build_number = os.getenv("BUILD_NUMBER", "local-dev")
        git_sha = os.getenv("GIT_SHA", os.getenv("GITHUB_SHA", get_git_sha()))
        environment = os.getenv("ENVIRONMENT", os.getenv("ENV", "development"))

        return {
            "status": "ok",
            "build": build_number,
            "sha": git_sha,
            "env": environment
        }

    @app.get("/health/db", tags=["health"])
    async def health_db():
        """Audit store health endpoint."""
        is_ok, message = await ping_store()
        if not is_ok:
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "db": "unavailable", "message": message}
            )
        return {"status": "ok", "db": "available", "backend": settings.effective_store_backend, "message": message}

    app.include_router(audit_router)
    app.include_router(collector_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    app_logger.info(f"Starting {settings.APP_NAME} server")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_config=None  # Use our custom logger
    )
