"""Application entry point."""

import asyncio
import logging
import signal
import sys

from lumera.config import get_config
from lumera.db import close_pool, get_pool
from lumera.payments.server import run_server
from lumera.payments.store import SubscriptionStore


def _loaded(value: str) -> str:
    return "loaded" if value else "MISSING"


async def boot(shutdown_event: asyncio.Event) -> None:
    """
    Boot sequence: load config → initialize pool → serve → shutdown.

    Raises:
        SystemExit: On configuration or database errors
    """
    logger = logging.getLogger(__name__)

    try:
        config = get_config()
        logger.info(f"Configuration loaded: env={config.env}")
        logger.info(f"Stripe secret key: {_loaded(config.stripe_secret.get_secret_value())}")
        logger.info(
            f"Stripe webhook secret: {_loaded(config.stripe_webhook_secret.get_secret_value())}"
        )
        logger.info(
            f"Price IDs: latam={config.stripe_price_latam_monthly or '-'}, "
            f"emea={config.stripe_price_emea_monthly or '-'}, "
            f"usa={config.stripe_price_usa_monthly or '-'}"
        )

        pool = await get_pool()
    except Exception as e:
        logger.error(f"Boot sequence failed: {e}")
        raise SystemExit(1) from e

    store = SubscriptionStore(pool, ledger_enabled=config.payment_ledger_enabled)
    try:
        await run_server(store, shutdown_event)
    finally:
        await close_pool()
        logger.info("Application shutdown complete")


def main() -> None:
    """Main entry point with logging configuration.

    Blocks until SIGTERM/SIGINT received.
    """
    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    shutdown_event = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    try:
        loop.run_until_complete(boot(shutdown_event))
    except SystemExit:
        raise
    except Exception as e:
        logging.error(f"Unexpected error: {e}")
        sys.exit(1)
    finally:
        loop.close()


if __name__ == "__main__":
    main()
