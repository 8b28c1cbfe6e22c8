from __future__ import annotations

import logging
import os

import uvicorn

from .env import get_settings


def _setup_prometheus_multiproc_dir() -> None:
    """Prepare the Prometheus multiprocess directory before Uvicorn starts.

    Stale files from a previous run would otherwise be aggregated into the
    counters of this one.
    """
    prom_dir = os.environ.get("PROMETHEUS_MULTIPROC_DIR")
    if not prom_dir:
        return

    os.makedirs(prom_dir, exist_ok=True)
    for filename in os.listdir(prom_dir):
        file_path = os.path.join(prom_dir, filename)
        if os.path.isfile(file_path):
            os.remove(file_path)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def main() -> None:
    """Main entry point: serve the control API, which runs the scheduler."""

    settings = get_settings()
    configure_logging(settings.log_level)

    print(f"Starting {settings.app_name} v{settings.app_version}")
    print(f"Database: {settings.database_url}")
    print(f"Payment network: {settings.ln_driver} at {settings.lnd_rest_url}")
    print(f"API will be available at: http://{settings.api_host}:{settings.api_port}")

    _setup_prometheus_multiproc_dir()

    # One worker only: every worker would run its own scheduler and pay twice
    uvicorn.run(
        "lnautopay.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
        workers=1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
