from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI


def _validate_env() -> None:
    """
    Validate registry configuration at startup.

    Raises RuntimeError listing every invalid variable so the operator can
    fix all problems in one restart cycle. Missing service keys only warn:
    the registries then answer with errors and every row ends as REVIEW or
    not found.
    """

    from app.config import get_pipeline_settings, get_secondary_registry_settings
    from app.domain.drug_records import CountMode

    errors: list[str] = []

    pipeline_settings = get_pipeline_settings()
    if pipeline_settings.count_mode not in CountMode.ALL:
        errors.append(
            f"PIPELINE_COUNT_MODE='{pipeline_settings.count_mode}' is not valid. "
            f"Allowed values: {list(CountMode.ALL)}."
        )
    if not pipeline_settings.local_names_path.is_file():
        errors.append(f"LOCAL_NAMES_PATH does not point to a file: {pipeline_settings.local_names_path}")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    if not get_secondary_registry_settings().service_key:
        logging.getLogger(__name__).warning(
            "SECONDARY_REGISTRY_SERVICE_KEY is not set; secondary registry lookups will return no products."
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Load the local-name dictionary on boot; cancel any active run on exit."""
    from app.services.pipeline_orchestrator import get_pipeline_orchestrator

    orchestrator = get_pipeline_orchestrator()
    logging.getLogger(__name__).info("Pipeline orchestrator ready run_status=%s", orchestrator.current_run.status)
    try:
        yield
    finally:
        if orchestrator.cancel():
            logging.getLogger(__name__).info("Active pipeline run cancelled on shutdown")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _configure_logging()
    _validate_env()

    application = FastAPI(
        title="Generic Landscape API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import pipeline_router

    application.include_router(pipeline_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
