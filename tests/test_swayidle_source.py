"""Tests for swayidle_source module."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from idle_watchdog.config import SwayidleConfig
from idle_watchdog.idle import Idle
from idle_watchdog.interrupt import SourceError
from idle_watchdog.swayidle_source import PROBE_TIMEOUT, SwayidleInterruptSource

from conftest import FakeTimerService


def make_stream(lines: list[bytes]) -> MagicMock:
    """Create a mock stream whose readline() yields lines then EOF."""
    stream = MagicMock()
    stream.readline = AsyncMock(side_effect=lines + [b""])
    return stream


class TestSwayidleInterruptSource:
    """Tests for SwayidleInterruptSource class."""

    @pytest.fixture
    def config(self) -> SwayidleConfig:
        """Provide swayidle config."""
        return SwayidleConfig(enabled=True, binary="swayidle")

    @pytest.fixture
    def source(self, config: SwayidleConfig) -> SwayidleInterruptSource:
        """Create SwayidleInterruptSource instance."""
        return SwayidleInterruptSource(config)

    @pytest.fixture
    def listener(self, source: SwayidleInterruptSource) -> MagicMock:
        """Record emitted interrupts."""
        listener = MagicMock()
        source.on_interrupt.subscribe(listener)
        return listener

    def test_initial_state(self, source: SwayidleInterruptSource) -> None:
        """Test the source starts stopped."""
        assert source.running is False

    def test_build_command(self, source: SwayidleInterruptSource) -> None:
        """Test command building uses a short probe timeout."""
        with patch("shutil.which", return_value="/usr/bin/swayidle"):
            cmd = source._build_command()

        assert cmd == [
            "/usr/bin/swayidle",
            "-w",
            "timeout",
            str(PROBE_TIMEOUT),
            "echo IDLE",
            "resume",
            "echo ACTIVE",
        ]

    def test_build_command_absolute_path(self) -> None:
        """Test command building with absolute path skips PATH lookup."""
        source = SwayidleInterruptSource(
            SwayidleConfig(binary="/custom/path/swayidle")
        )
        with patch("shutil.which") as mock_which:
            cmd = source._build_command()

        assert cmd[0] == "/custom/path/swayidle"
        mock_which.assert_not_called()

    def test_find_binary_not_found(self, source: SwayidleInterruptSource) -> None:
        """Test error when binary not found in PATH."""
        with patch("shutil.which", return_value=None):
            with pytest.raises(SourceError, match="not found"):
                source._find_binary()

    def test_active_emits_when_attached(
        self, source: SwayidleInterruptSource, listener: MagicMock
    ) -> None:
        """Test ACTIVE output emits an interrupt while attached."""
        source.attach()

        source._handle_output("ACTIVE")

        args = listener.call_args.args[0]
        assert args.inner_args == "swayidle"
        assert args.force is False

    def test_active_ignored_when_detached(
        self, source: SwayidleInterruptSource, listener: MagicMock
    ) -> None:
        """Test ACTIVE output is dropped while detached."""
        source._handle_output("ACTIVE")
        listener.assert_not_called()

    def test_idle_and_unknown_output(
        self, source: SwayidleInterruptSource, listener: MagicMock
    ) -> None:
        """Test IDLE and unknown lines never emit."""
        source.attach()
        source._handle_output("IDLE")
        source._handle_output("UNKNOWN")
        listener.assert_not_called()

    def test_shared_source_keeps_other_subscription(
        self, source: SwayidleInterruptSource
    ) -> None:
        """Test releasing one controller keeps ACTIVE reaching another."""
        first = Idle(FakeTimerService())
        second = Idle(FakeTimerService())
        observed = MagicMock()
        second.on_interrupt.subscribe(observed)
        first.set_interrupts([source])
        second.set_interrupts([source])
        first.watch()
        second.watch()

        first.clear_interrupts()
        source._handle_output("ACTIVE")

        observed.assert_called_once_with("swayidle")
        assert source.attached is True

        second.dispose()
        first.dispose()
        assert source.attached is False

    async def test_start_binary_not_found(
        self, source: SwayidleInterruptSource
    ) -> None:
        """Test start raises when the binary is missing."""
        with patch("shutil.which", return_value=None):
            with pytest.raises(SourceError):
                await source.start()
        assert source.running is False

    async def test_start_exec_failure(self) -> None:
        """Test start wraps OSError from the subprocess."""
        source = SwayidleInterruptSource(SwayidleConfig(binary="/nonexistent/swayidle"))
        with patch(
            "asyncio.create_subprocess_exec",
            side_effect=FileNotFoundError("no such file"),
        ):
            with pytest.raises(SourceError, match="Failed to start"):
                await source.start()

    async def test_start_and_stop(self, source: SwayidleInterruptSource) -> None:
        """Test the subprocess lifecycle."""
        process = MagicMock()
        process.returncode = None
        process.stderr = make_stream([])
        process.wait = AsyncMock(return_value=0)

        with patch("shutil.which", return_value="/usr/bin/swayidle"), patch(
            "asyncio.create_subprocess_exec", AsyncMock(return_value=process)
        ):
            await source.start()
            assert source.running is True

            await source.start()  # Already running, no second process

            await source.stop()

        assert source.running is False
        process.terminate.assert_called_once()

    async def test_stop_not_running(self, source: SwayidleInterruptSource) -> None:
        """Test stop when not running does nothing."""
        await source.stop()

    async def test_run_not_started(self, source: SwayidleInterruptSource) -> None:
        """Test run raises before start."""
        with pytest.raises(SourceError, match="not started"):
            await source.run()

    async def test_run_reads_output(
        self, source: SwayidleInterruptSource, listener: MagicMock
    ) -> None:
        """Test run turns ACTIVE lines into interrupts until EOF."""
        process = MagicMock()
        process.stdout = make_stream([b"IDLE\n", b"ACTIVE\n", b"\n", b"ACTIVE\n"])
        source._process = process
        source._running = True
        source.attach()

        await asyncio.wait_for(source.run(), timeout=2.0)

        assert listener.call_count == 2
        assert source.running is False
