"""Main entry point for the keeper service."""

import sys

from prometheus_client import start_http_server

from keeper.bootstrap import build_ledger, build_publisher, register_keeper_schemas
from keeper.core.config import ConfigurationError, Settings
from keeper.core.logging import configure_logging, get_logger
from keeper.service.service import KeeperService

logger = get_logger(__name__)


def main() -> None:
    """Validate configuration, then run the keeper until stopped."""
    settings = Settings()
    configure_logging(level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS)

    try:
        settings.require_keeper_credentials()
    except ConfigurationError as e:
        logger.critical("invalid_configuration", error=str(e))
        sys.exit(1)

    ledger = build_ledger(settings)
    publisher = build_publisher(settings, ledger.address)
    schema_ids = register_keeper_schemas(publisher)

    logger.info(
        "intelligent_keeper_started",
        keeper_wallet=ledger.address,
        rpc_url=settings.SOMNIA_RPC_URL,
        contract=settings.LUCIDPAY_ADDRESS,
        schema_ids=schema_ids,
    )

    if settings.METRICS_PORT:
        start_http_server(settings.METRICS_PORT)
        logger.info("metrics_server_started", port=settings.METRICS_PORT)

    KeeperService.from_settings(settings, ledger, publisher).run()


if __name__ == "__main__":
    main()
