"""Main daemon entry point and orchestration.

Runs one idle controller fed by the configured interrupt sources, with
notifications logged and optionally posted to Slack.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from . import __version__
from .config import Config, DEFAULT_CONFIG_PATH
from .idle import Idle
from .interrupt import InterruptSource, SourceError
from .slack_handler import SlackHandler
from .socket_source import SocketInterruptSource
from .swayidle_source import SwayidleInterruptSource

logger = logging.getLogger(__name__)


class Daemon:
    """Main daemon class coordinating all components."""

    def __init__(self, config: Config) -> None:
        """Initialize the daemon with configuration.

        Args:
            config: Loaded configuration.
        """
        self._config = config
        self._idle: Idle | None = None
        self._socket_source: SocketInterruptSource | None = None
        self._swayidle_source: SwayidleInterruptSource | None = None
        self._slack_handler: SlackHandler | None = None
        self._shutdown_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def idle(self) -> Idle | None:
        """The controller, once started."""
        return self._idle

    async def start(self) -> None:
        """Start all daemon components and begin watching."""
        logger.info(f"Starting Idle Watchdog v{__version__}")

        self._idle = Idle()
        self._config.watch.apply(self._idle)
        self._idle.on_idle_start.subscribe(self._on_idle_start)
        self._idle.on_idle_end.subscribe(self._on_idle_end)
        self._idle.on_timeout.subscribe(self._on_timeout)

        sources: list[InterruptSource] = []

        if self._config.socket.enabled:
            self._socket_source = SocketInterruptSource(self._config.socket.path)
            await self._socket_source.start()
            sources.append(self._socket_source)

        if self._config.swayidle.enabled:
            self._swayidle_source = SwayidleInterruptSource(self._config.swayidle)
            await self._swayidle_source.start()
            sources.append(self._swayidle_source)
            self._tasks.append(
                asyncio.create_task(self._swayidle_source.run(), name="swayidle")
            )

        if self._config.slack.enabled:
            self._slack_handler = SlackHandler(self._config.slack)
            await self._slack_handler.start()
            self._slack_handler.connect(self._idle)
            sources.append(self._slack_handler)

        self._idle.set_interrupts(sources)
        self._idle.watch()

        logger.info(
            f"Daemon started: idle={self._idle.get_idle()}s "
            f"timeout={self._idle.get_timeout()}s "
            f"auto_resume={self._idle.get_auto_resume().value} "
            f"sources={len(sources)}"
        )

    async def stop(self) -> None:
        """Stop all daemon components."""
        logger.info("Stopping daemon...")

        if self._idle:
            self._idle.dispose()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._tasks, return_exceptions=True),
                    timeout=10.0,
                )
            except asyncio.TimeoutError:
                logger.warning("Timed out waiting for tasks to cancel")
        self._tasks.clear()

        if self._slack_handler:
            await self._slack_handler.stop()
        if self._swayidle_source:
            await self._swayidle_source.stop()
        if self._socket_source:
            await self._socket_source.stop()

        logger.info("Daemon stopped")

    async def run(self) -> None:
        """Run the daemon until shutdown signal or timeout."""
        try:
            await self.start()
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    def request_shutdown(self) -> None:
        """Request daemon shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    def _on_idle_start(self, _: None) -> None:
        logger.info(f"Idle after {self._config.watch.idle}s without activity")

    def _on_idle_end(self, _: None) -> None:
        logger.info("Activity resumed")

    def _on_timeout(self, _: None) -> None:
        # Timeout is terminal: interrupts are ignored until watch() is called
        logger.warning("Idle timeout reached, shutting down")
        self.request_shutdown()


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the daemon.

    Args:
        debug: If True, use DEBUG level; otherwise INFO.
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Reduce noise from third-party libraries
    logging.getLogger("slack_bolt").setLevel(logging.WARNING)
    logging.getLogger("slack_sdk").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="Idle Watchdog - idle detection with countdown to timeout",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to config file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def main() -> None:
    """Main entry point for the daemon."""
    args = parse_args()
    setup_logging(debug=args.debug)

    try:
        config = Config.load(args.config)
    except FileNotFoundError:
        logger.error(f"Config file not found: {args.config}")
        logger.error("Create config file or specify path with --config")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    if config.watch.debug and not args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    errors = config.validate()
    if errors:
        logger.error("Configuration errors:")
        for error in errors:
            logger.error(f"  - {error}")
        sys.exit(1)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    daemon = Daemon(config)

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, daemon.request_shutdown)

    try:
        loop.run_until_complete(daemon.run())
    except SourceError as e:
        logger.error(f"Failed to start interrupt source: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()

    logger.info("Daemon exited")


if __name__ == "__main__":
    main()
