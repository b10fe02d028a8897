"""Interrupt source driven by a swayidle subprocess.

Runs swayidle with a one second timeout so that every return from a short
pause in keyboard/mouse input is reported as an ACTIVE line, and emits an
interrupt for each one.
"""

import asyncio
import logging
import shutil

from .config import SwayidleConfig
from .interrupt import InterruptArgs, InterruptSource, SourceError

logger = logging.getLogger(__name__)

# Seconds of input silence before swayidle reports IDLE. The following input
# produces the ACTIVE line that becomes an interrupt.
PROBE_TIMEOUT = 1


class SwayidleInterruptSource(InterruptSource):
    """Reports Wayland input activity using swayidle.

    The subprocess is managed with start()/stop() and its output is consumed
    by run(), which should be run as an asyncio task. Interrupts are emitted
    while at least one subscription has the source attached.
    """

    def __init__(self, config: SwayidleConfig) -> None:
        """Initialize the swayidle source.

        Args:
            config: Swayidle configuration (binary path).
        """
        super().__init__()
        self._config = config
        self._process: asyncio.subprocess.Process | None = None
        self._running = False
        self._attach_count = 0
        self._stderr_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        """Whether the subprocess is currently running."""
        return self._running

    @property
    def attached(self) -> bool:
        """Whether any subscription has the source attached."""
        return self._attach_count > 0

    def attach(self) -> None:
        self._attach_count += 1

    def detach(self) -> None:
        self._attach_count = max(0, self._attach_count - 1)

    def _find_binary(self) -> str:
        """Find the swayidle binary path.

        Raises:
            SourceError: If binary not found.
        """
        binary = self._config.binary
        if "/" in binary:
            return binary

        found = shutil.which(binary)
        if found is None:
            raise SourceError(
                f"swayidle binary '{binary}' not found in PATH. "
                "Install swayidle or specify full path in config."
            )
        return found

    def _build_command(self) -> list[str]:
        """Build the swayidle command with arguments."""
        return [
            self._find_binary(),
            "-w",
            "timeout",
            str(PROBE_TIMEOUT),
            "echo IDLE",
            "resume",
            "echo ACTIVE",
        ]

    async def start(self) -> None:
        """Start the swayidle subprocess.

        Raises:
            SourceError: If subprocess fails to start.
        """
        if self._running:
            logger.warning("SwayidleInterruptSource already running")
            return

        cmd = self._build_command()
        logger.info(f"Starting swayidle: {' '.join(cmd)}")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SourceError(f"Failed to start swayidle: {e}") from e

        self._running = True
        self._stderr_task = asyncio.create_task(
            self._read_stderr(), name="swayidle_stderr"
        )
        logger.info("SwayidleInterruptSource started")

    async def stop(self) -> None:
        """Stop the swayidle subprocess."""
        if not self._running or self._process is None:
            return

        self._running = False

        if self._stderr_task is not None:
            self._stderr_task.cancel()
            try:
                await self._stderr_task
            except asyncio.CancelledError:
                pass
            self._stderr_task = None

        if self._process.returncode is None:
            logger.info("Terminating swayidle subprocess")
            self._process.terminate()
            try:
                await asyncio.wait_for(self._process.wait(), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("swayidle did not terminate, killing")
                self._process.kill()
                await self._process.wait()

        self._process = None
        logger.info("SwayidleInterruptSource stopped")

    async def run(self) -> None:
        """Read swayidle output until stopped or the subprocess exits.

        Raises:
            SourceError: If called before start().
        """
        if self._process is None or self._process.stdout is None:
            raise SourceError("SwayidleInterruptSource not started")

        try:
            while self._running:
                line = await self._process.stdout.readline()
                if not line:
                    if self._running:
                        logger.error("swayidle stdout closed unexpectedly")
                    break

                text = line.decode().strip()
                if text:
                    self._handle_output(text)
        finally:
            self._running = False

    def _handle_output(self, text: str) -> None:
        """Handle a line of output from swayidle.

        Args:
            text: Trimmed output line from swayidle.
        """
        if text == "ACTIVE":
            if self.attached:
                logger.debug("Input activity reported by swayidle")
                self.on_interrupt.emit(InterruptArgs(self, "swayidle"))
        elif text != "IDLE":
            logger.warning(f"Unexpected swayidle output: {text}")

    async def _read_stderr(self) -> None:
        """Read and log stderr from swayidle subprocess."""
        if self._process is None or self._process.stderr is None:
            return

        while True:
            line = await self._process.stderr.readline()
            if not line:
                break
            text = line.decode().strip()
            if text:
                logger.warning(f"swayidle stderr: {text}")
