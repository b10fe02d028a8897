"""Configuration loading for Idle Watchdog.

Loads configuration from TOML file with environment variable overrides.
"""

import math
import os
import platform
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Self

from .idle import DEFAULT_IDLE, DEFAULT_TIMEOUT, AutoResume, Idle


def _is_seconds(value) -> bool:
    """Whether value is a finite number of seconds (bools excluded)."""
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _get_default_socket_path() -> Path:
    """Get platform-appropriate default socket path."""
    # Check for XDG_RUNTIME_DIR first (Linux standard)
    if "XDG_RUNTIME_DIR" in os.environ:
        return Path(os.environ["XDG_RUNTIME_DIR"]) / "idle-watchdog.sock"

    if platform.system() == "Linux":
        runtime_dir = Path(f"/run/user/{os.getuid()}")
        if runtime_dir.exists():
            return runtime_dir / "idle-watchdog.sock"

    return Path("/tmp") / "idle-watchdog.sock"


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "idle-watchdog" / "config.toml"
DEFAULT_SOCKET_PATH = _get_default_socket_path()
DEFAULT_AUTO_RESUME = AutoResume.IDLE.value
DEFAULT_SWAYIDLE_BINARY = "swayidle"
DEFAULT_WARNING_INTERVAL = 10


@dataclass
class WatchConfig:
    """Configuration for the idle controller."""

    idle: int = DEFAULT_IDLE
    timeout: int = DEFAULT_TIMEOUT
    auto_resume: str = DEFAULT_AUTO_RESUME
    debug: bool = False

    def validate(self) -> list[str]:
        """Validate watch configuration, returning list of errors."""
        errors = []
        if not _is_seconds(self.idle) or self.idle < 1:
            errors.append("idle must be at least 1 second")
        if not _is_seconds(self.timeout) or self.timeout < 0:
            errors.append("timeout must be 0 (disabled) or a positive number")
        valid = [r.value for r in AutoResume]
        if self.auto_resume not in valid:
            errors.append(
                f"auto_resume must be one of {', '.join(valid)} "
                f"(got '{self.auto_resume}')"
            )
        return errors

    def apply(self, idle: Idle) -> None:
        """Push these values into a controller.

        Raises:
            InvalidArgumentError: If a value is rejected by the controller.
        """
        idle.set_idle(self.idle)
        idle.set_timeout(self.timeout)
        idle.set_auto_resume(self.auto_resume)


@dataclass
class SocketConfig:
    """Configuration for the Unix socket interrupt source."""

    enabled: bool = True
    path: Path = field(default_factory=lambda: DEFAULT_SOCKET_PATH)


@dataclass
class SwayidleConfig:
    """Configuration for the swayidle interrupt source."""

    enabled: bool = False
    binary: str = DEFAULT_SWAYIDLE_BINARY


@dataclass
class SlackConfig:
    """Configuration for Slack integration."""

    enabled: bool = False
    bot_token: str = ""
    app_token: str = ""
    channel: str = ""
    warning_interval: int = DEFAULT_WARNING_INTERVAL

    def validate(self) -> list[str]:
        """Validate Slack configuration, returning list of errors."""
        if not self.enabled:
            return []
        errors = []
        if not self.bot_token:
            errors.append("Slack bot_token is required")
        elif not self.bot_token.startswith("xoxb-"):
            errors.append("Slack bot_token should start with 'xoxb-'")
        if not self.app_token:
            errors.append("Slack app_token is required")
        elif not self.app_token.startswith("xapp-"):
            errors.append("Slack app_token should start with 'xapp-'")
        if not self.channel:
            errors.append("Slack channel is required")
        if self.warning_interval < 1:
            errors.append("Slack warning_interval must be at least 1")
        return errors


@dataclass
class Config:
    """Complete watchdog configuration."""

    watch: WatchConfig = field(default_factory=WatchConfig)
    socket: SocketConfig = field(default_factory=SocketConfig)
    swayidle: SwayidleConfig = field(default_factory=SwayidleConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        errors = []
        errors.extend(self.watch.validate())
        errors.extend(self.slack.validate())
        return errors

    @classmethod
    def load(cls, config_path: Path | None = None) -> Self:
        """Load configuration from TOML file with environment variable overrides.

        Args:
            config_path: Path to config file. Defaults to ~/.config/idle-watchdog/config.toml

        Returns:
            Loaded and merged Config instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            tomllib.TOMLDecodeError: If config file is invalid TOML.
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        watch_data = data.get("watch", {})
        socket_data = data.get("socket", {})
        swayidle_data = data.get("swayidle", {})
        slack_data = data.get("slack", {})

        config = cls(
            watch=WatchConfig(
                idle=watch_data.get("idle", DEFAULT_IDLE),
                timeout=watch_data.get("timeout", DEFAULT_TIMEOUT),
                auto_resume=watch_data.get("auto_resume", DEFAULT_AUTO_RESUME),
                debug=watch_data.get("debug", False),
            ),
            socket=SocketConfig(
                enabled=socket_data.get("enabled", True),
                path=Path(socket_data.get("path", DEFAULT_SOCKET_PATH)),
            ),
            swayidle=SwayidleConfig(
                enabled=swayidle_data.get("enabled", False),
                binary=swayidle_data.get("binary", DEFAULT_SWAYIDLE_BINARY),
            ),
            slack=SlackConfig(
                enabled=slack_data.get("enabled", False),
                bot_token=slack_data.get("bot_token", ""),
                app_token=slack_data.get("app_token", ""),
                channel=slack_data.get("channel", ""),
                warning_interval=slack_data.get(
                    "warning_interval", DEFAULT_WARNING_INTERVAL
                ),
            ),
        )

        # Apply environment variable overrides
        config._apply_env_overrides()

        return config

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to configuration."""
        # Watch overrides
        if idle := os.environ.get("IDLE_WATCHDOG_IDLE"):
            self.watch.idle = int(idle)
        if timeout := os.environ.get("IDLE_WATCHDOG_TIMEOUT"):
            self.watch.timeout = int(timeout)
        if auto_resume := os.environ.get("IDLE_WATCHDOG_AUTO_RESUME"):
            self.watch.auto_resume = auto_resume
        if debug := os.environ.get("IDLE_WATCHDOG_DEBUG"):
            self.watch.debug = debug.lower() in ("1", "true", "yes")

        # Socket overrides
        if socket_path := os.environ.get("IDLE_WATCHDOG_SOCKET_PATH"):
            self.socket.path = Path(socket_path)

        # Swayidle overrides
        if swayidle_binary := os.environ.get("IDLE_WATCHDOG_SWAYIDLE_BINARY"):
            self.swayidle.binary = swayidle_binary

        # Slack overrides
        if bot_token := os.environ.get("IDLE_WATCHDOG_SLACK_BOT_TOKEN"):
            self.slack.bot_token = bot_token
        if app_token := os.environ.get("IDLE_WATCHDOG_SLACK_APP_TOKEN"):
            self.slack.app_token = app_token
        if channel := os.environ.get("IDLE_WATCHDOG_SLACK_CHANNEL"):
            self.slack.channel = channel
