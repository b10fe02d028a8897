"""Unix domain socket interrupt source.

Accepts connections from local clients (editor plugins, shell hooks, cron
jobs) reporting activity, and turns each report into an interrupt.
"""

import asyncio
import json
import logging
import os
import stat
from pathlib import Path

from .interrupt import InterruptArgs, InterruptSource, SourceError

logger = logging.getLogger(__name__)


class SocketInterruptSource(InterruptSource):
    """Interrupt source listening on a Unix domain socket.

    Each connection sends a single newline-terminated JSON object:

        {"force": false, "data": {"app": "vim"}}

    Both keys are optional. ``data`` becomes the interrupt's inner_args.
    Reports are accepted while at least one subscription has the source
    attached; the server itself is managed with start() and stop().
    """

    def __init__(self, socket_path: Path) -> None:
        """Initialize the socket source.

        Args:
            socket_path: Path to the Unix domain socket.
        """
        super().__init__()
        self._socket_path = socket_path
        self._server: asyncio.Server | None = None
        self._running = False
        self._attach_count = 0

    @property
    def running(self) -> bool:
        """Whether the server is currently running."""
        return self._running

    @property
    def attached(self) -> bool:
        """Whether reports are currently accepted."""
        return self._attach_count > 0

    @property
    def socket_path(self) -> Path:
        """Path to the Unix domain socket."""
        return self._socket_path

    def attach(self) -> None:
        self._attach_count += 1
        if self._attach_count > 1:
            return
        logger.debug(f"Accepting activity reports on {self._socket_path}")

    def detach(self) -> None:
        self._attach_count = max(0, self._attach_count - 1)
        if self._attach_count:
            return
        logger.debug(f"Rejecting activity reports on {self._socket_path}")

    async def start(self) -> None:
        """Start listening on the Unix socket.

        Raises:
            SourceError: If socket creation fails.
        """
        if self._running:
            logger.warning("SocketInterruptSource already running")
            return

        # Remove existing socket file if present
        if self._socket_path.exists():
            logger.info(f"Removing existing socket: {self._socket_path}")
            self._socket_path.unlink()

        self._socket_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._server = await asyncio.start_unix_server(
                self._handle_connection,
                path=str(self._socket_path),
            )
        except OSError as e:
            raise SourceError(f"Failed to create socket: {e}") from e

        # Set socket permissions to user-only (0600)
        os.chmod(self._socket_path, stat.S_IRUSR | stat.S_IWUSR)

        self._running = True
        logger.info(f"SocketInterruptSource listening on {self._socket_path}")

    async def stop(self) -> None:
        """Stop the server and remove the socket file."""
        if not self._running:
            return

        logger.info("Stopping SocketInterruptSource...")
        self._running = False

        if self._server:
            self._server.close()
            try:
                await asyncio.wait_for(self._server.wait_closed(), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Server close timed out after 5s")
            self._server = None

        if self._socket_path.exists():
            self._socket_path.unlink()

        logger.info("SocketInterruptSource stopped")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle one activity report.

        Args:
            reader: Stream reader for the connection.
            writer: Stream writer for the connection.
        """
        try:
            try:
                data = await asyncio.wait_for(reader.readline(), timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("Connection timed out waiting for report")
                return

            if not data:
                logger.debug("Connection closed without data")
                return

            try:
                report = json.loads(data.decode())
            except json.JSONDecodeError as e:
                logger.error(f"Invalid JSON activity report: {e}")
                await send_reply(writer, {"error": f"Invalid JSON: {e}"})
                return

            if not isinstance(report, dict):
                await send_reply(writer, {"error": "Report must be a JSON object"})
                return

            if not self.attached:
                logger.debug("Activity report received while detached, ignoring")
                await send_reply(writer, {"accepted": False})
                return

            force = report.get("force") is True
            logger.debug(f"Activity report received (force={force})")
            self.on_interrupt.emit(InterruptArgs(self, report.get("data"), force))
            await send_reply(writer, {"accepted": True})

        except Exception:
            logger.exception("Error handling activity report")
        finally:
            if not writer.is_closing():
                writer.close()


async def send_reply(writer: asyncio.StreamWriter, reply: dict) -> None:
    """Send a JSON reply to a client and close the connection.

    Args:
        writer: Stream writer for the connection.
        reply: Dict to send.
    """
    try:
        if writer.is_closing():
            logger.error("Cannot send reply: writer is already closing")
            return
        writer.write((json.dumps(reply) + "\n").encode())
        await writer.drain()
    except (ConnectionResetError, BrokenPipeError):
        logger.error("Client closed the connection before the reply was sent")
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionResetError, BrokenPipeError):
            pass
