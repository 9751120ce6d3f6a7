"""
Runtime entry point for the object storage gateway.

This module is invoked via the `storage-gateway` console script or
`python -m storage_gateway.runtime`.
"""

import argparse
from collections.abc import Sequence
import logging
import signal
import sys
from types import FrameType

import uvicorn

from .config import GatewaySettings, get_settings
from .services.gateway_app import create_app
from .telemetry import setup_tracing
from .utils.executors import ServiceExecutorFactory


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="storage-gateway",
        description="HTTP gateway routing objects to discovered storage backends",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Load settings from this .env file instead of ./.env",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level regardless of LOG_LEVEL",
    )
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> GatewaySettings:
    """Build settings from the environment and command-line overrides."""
    if args.env_file:
        settings = GatewaySettings(_env_file=args.env_file)  # type: ignore[call-arg]
    else:
        settings = get_settings()
    if args.debug:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    return settings


def setup_signal_handlers(server: uvicorn.Server) -> None:
    """
    Setup graceful shutdown handlers for SIGINT and SIGTERM.

    Args:
        server: The uvicorn server instance to shutdown
    """

    def signal_handler(signum: int, _frame: FrameType | None) -> None:
        logger.info("Received signal %d, initiating graceful shutdown...", signum)
        ServiceExecutorFactory.shutdown()
        server.should_exit = True

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def main(argv: Sequence[str] | None = None) -> None:
    """
    Main entry point for the gateway runtime.
    """
    try:
        settings = load_settings(parse_args(argv))

        # Configure logging level from settings
        logging.getLogger().setLevel(settings.log_level)
        logger.setLevel(settings.log_level)

        setup_tracing(settings, service_name="object-storage-gateway")

        logger.info("=" * 70)
        logger.info("Object Storage Gateway - Startup")
        logger.info("=" * 70)
        logger.info("Listen Address: %s:%d", settings.listen_host, settings.listen_port)
        logger.info("Backend Prefix: %s", settings.backend_name_prefix)
        logger.info(
            "Backend Port: %d (%s)", settings.backend_port, settings.backend_address_mode.value
        )
        logger.info("Bucket: %s", settings.bucket_name)
        logger.info("Request Timeout: %.1fs", settings.request_timeout_seconds)
        logger.info("Discovery Cache TTL: %.1fs", settings.discovery_cache_ttl_seconds)
        logger.info("IO Threads: %d (per pool)", settings.io_worker_threads)
        logger.info("=" * 70)

        app = create_app(settings)

        config = uvicorn.Config(
            app,
            host=settings.listen_host,
            port=settings.listen_port,
            log_level=settings.log_level.lower(),
            access_log=False,
            server_header=False,
            date_header=False,
        )

        server = uvicorn.Server(config)

        setup_signal_handlers(server)

        logger.info(
            "Starting gateway on http://%s:%d", settings.listen_host, settings.listen_port
        )
        server.run()

        logger.info("Gateway shutdown complete")

    except Exception:
        logger.exception("Fatal error during startup")
        sys.exit(1)


if __name__ == "__main__":
    main()
