# gamepulse/__main__.py

"""
Run the GamePulse service until SIGINT or SIGTERM.

    python -m gamepulse
"""

import asyncio
import logging
import signal
import sys

from .config import load_config
from .log_config import setup_logging
from .metrics import setup_metrics
from .providers.registry import ProviderRegistry
from .providers.shl import SHLProvider
from .service import GamePulseService

logger = logging.getLogger('gamepulse')


async def run(config):
    """Start the service and keep it running until a shutdown signal arrives."""
    metrics = setup_metrics(config)
    providers = ProviderRegistry([SHLProvider(config, metrics=metrics)])
    service = GamePulseService(config, providers, metrics=metrics)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(shutdown.set))

    async with service:
        logger.info("🚀 GamePulse running; press Ctrl+C to stop")
        await shutdown.wait()
        logger.info("🛑 Shutting down GamePulse...")


def main():
    config = load_config()
    setup_logging(config)
    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
