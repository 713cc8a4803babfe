import asyncio
import logging
from typing import Optional

from fastapi import FastAPI

from repopackager import __version__
from repopackager.api.packages import router as packages_router
from repopackager.core.config import build_manager, get_log_level, load_config
from repopackager.domain.events import (
    DuplicateIdentifier,
    ManagerEvent,
    RepositoryReady,
    ScanError,
)
from repopackager.domain.models import ManagerConfig
from repopackager.services.manager import PackageManager

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=get_log_level(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _log_manager_event(event: ManagerEvent) -> None:
    inner = event.event
    if isinstance(inner, RepositoryReady):
        logger.info(f"Repository '{inner.repository.name}' is ready")
    elif isinstance(inner, (ScanError, DuplicateIdentifier)):
        logger.debug(f"Repository '{inner.repository.name}' reported {type(inner).__name__}: {inner.error}")


async def _periodic_rescan_loop(manager: PackageManager, interval_seconds: int) -> None:
    """
    Background task that rescans every repository every interval_seconds.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        # Failed scans are logged by the manager.
        await asyncio.gather(*manager.scan_repositories(), return_exceptions=True)


def create_app(
    manager: Optional[PackageManager] = None,
    config: Optional[ManagerConfig] = None,
) -> FastAPI:
    """
    Build the HTTP application around a package manager.

    When no manager is given, one is built from ``config`` (or from the
    configuration file when ``config`` is also omitted).
    """
    if config is None:
        config = load_config() if manager is None else ManagerConfig(scan_on_startup=False)
    if manager is None:
        manager = build_manager(config)

    app = FastAPI(
        title="repopackager",
        version=__version__,
        description="Discovers packages in local repository trees and serves them as zip archives.",
    )
    app.state.manager = manager
    app.state.rescan_task = None
    manager.subscribe(_log_manager_event)

    @app.on_event("startup")
    async def startup_event() -> None:
        """
        Kick off the initial scan of every repository and, if configured,
        the periodic rescan loop.
        """
        if config.scan_on_startup:
            manager.scan_repositories()
        if config.rescan_interval_seconds and app.state.rescan_task is None:
            app.state.rescan_task = asyncio.create_task(
                _periodic_rescan_loop(manager, config.rescan_interval_seconds)
            )

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        if app.state.rescan_task is not None:
            app.state.rescan_task.cancel()
            app.state.rescan_task = None

    @app.get("/health")
    async def health() -> dict:
        """
        Lightweight health check endpoint.
        """
        return {"status": "ok"}

    app.include_router(packages_router, tags=["packages"])
    return app


if __name__ == "__main__":
    """
    Allow running `python -m repopackager.main` to start the Uvicorn development server.
    """
    import uvicorn

    configure_logging()
    uvicorn.run(
        create_app(),
        host="0.0.0.0",
        port=8000,
    )
