"""Slack integration via Socket Mode.

Posts idle, countdown and timeout notifications to a Slack channel and
turns the "I'm back" button into a forced interrupt.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Coroutine

from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
from slack_bolt.async_app import AsyncApp
from slack_sdk.web.async_client import AsyncWebClient

from .config import SlackConfig
from .idle import Idle
from .interrupt import InterruptArgs, InterruptSource

logger = logging.getLogger(__name__)

RESUME_ACTION_ID = "resume_watch"


class SlackHandler(InterruptSource):
    """Handles the Slack Socket Mode connection.

    Call connect(idle) to have the controller's notifications posted to
    the configured channel. Subscribing the handler itself as an interrupt
    source makes the "I'm back" button resume the controller.
    """

    def __init__(self, config: SlackConfig) -> None:
        """Initialize the Slack handler.

        Args:
            config: Slack configuration with tokens and channel.
        """
        super().__init__()
        self._config = config
        self._app: AsyncApp | None = None
        self._handler: AsyncSocketModeHandler | None = None
        self._running = False
        self._attach_count = 0
        self._idle: Idle | None = None
        self._disconnects: list = []
        self._tasks: set[asyncio.Task] = set()
        # Posts run one at a time, in notification order
        self._post_lock = asyncio.Lock()
        # (channel, ts) of the message posted when idling started
        self._idle_message: tuple[str, str] | None = None

    @property
    def running(self) -> bool:
        """Whether the handler is currently running."""
        return self._running

    @property
    def attached(self) -> bool:
        """Whether any subscription has the source attached."""
        return self._attach_count > 0

    def attach(self) -> None:
        self._attach_count += 1

    def detach(self) -> None:
        self._attach_count = max(0, self._attach_count - 1)

    async def start(self) -> None:
        """Start the Slack Socket Mode connection.

        Raises:
            Exception: If connection fails.
        """
        if self._running:
            logger.warning("SlackHandler already running")
            return

        logger.info("Starting Slack Socket Mode connection")

        self._app = AsyncApp(token=self._config.bot_token)
        self._app.action(RESUME_ACTION_ID)(self._handle_resume)

        self._handler = AsyncSocketModeHandler(
            app=self._app,
            app_token=self._config.app_token,
        )

        await self._handler.connect_async()
        self._running = True
        logger.info("Slack Socket Mode connected")

    async def stop(self) -> None:
        """Stop the Slack Socket Mode connection."""
        self.disconnect()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if not self._running:
            return

        logger.info("Stopping Slack Socket Mode connection")
        self._running = False

        if self._handler:
            try:
                await asyncio.wait_for(self._handler.close_async(), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Slack handler close timed out after 5s")
            except Exception:
                logger.exception("Error closing Slack handler")
            self._handler = None

        self._app = None
        logger.info("Slack Socket Mode disconnected")

    def connect(self, idle: Idle) -> None:
        """Post the controller's notifications to Slack.

        Args:
            idle: Controller whose notifications are posted.
        """
        self.disconnect()
        self._idle = idle
        self._disconnects = [
            idle.on_idle_start.subscribe(self._on_idle_start),
            idle.on_idle_end.subscribe(self._on_idle_end),
            idle.on_timeout_warning.subscribe(self._on_timeout_warning),
            idle.on_timeout.subscribe(self._on_timeout),
        ]

    def disconnect(self) -> None:
        """Stop posting notifications."""
        for unsubscribe in self._disconnects:
            unsubscribe()
        self._disconnects = []
        self._idle = None

    async def post_idle_start(self, idle_seconds: float, timeout: float) -> bool:
        """Post the idle-start message with the resume button.

        Returns:
            True if successfully posted, False otherwise.
        """
        result = await self._post(
            text="You are now idle",
            blocks=format_idle_start(idle_seconds, timeout),
        )
        if result is None:
            return False
        self._idle_message = result
        return True

    async def post_timeout_warning(self, remaining: int) -> bool:
        """Post a countdown warning."""
        result = await self._post(
            text=f"Timing out in {remaining}s",
            blocks=format_timeout_warning(remaining),
        )
        return result is not None

    async def post_timeout(self) -> bool:
        """Post the timeout message."""
        result = await self._post(text="Timed out", blocks=format_timeout())
        return result is not None

    async def update_idle_ended(self) -> None:
        """Replace the idle-start message once the user is active again."""
        if not self._app or self._idle_message is None:
            return

        channel, message_ts = self._idle_message
        self._idle_message = None
        try:
            await self._app.client.chat_update(
                channel=channel,
                ts=message_ts,
                text="You are active again",
                blocks=format_idle_end(),
            )
        except Exception:
            logger.exception("Failed to update Slack message (idle end)")

    async def _post(self, text: str, blocks: list[dict]) -> tuple[str, str] | None:
        """Post a message to the configured channel.

        Returns:
            Tuple of (channel, message_ts) if successful, None otherwise.
        """
        if not self._app:
            logger.error("Cannot post message: Slack not connected")
            return None

        try:
            client: AsyncWebClient = self._app.client
            response = await client.chat_postMessage(
                channel=self._config.channel,
                text=text,
                blocks=blocks,
            )
            logger.info(f"Posted to Slack: {text}")
            return (response["channel"], response["ts"])
        except Exception:
            logger.exception("Failed to post message to Slack")
            return None

    async def _serialized(self, coro: Coroutine[Any, Any, Any]) -> None:
        async with self._post_lock:
            await coro

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(self._serialized(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_idle_start(self, _: None) -> None:
        if self._idle is None:
            return
        self._spawn(
            self.post_idle_start(self._idle.get_idle(), self._idle.get_timeout())
        )

    def _on_idle_end(self, _: None) -> None:
        self._spawn(self.update_idle_ended())

    def _on_timeout_warning(self, remaining: int) -> None:
        if remaining % self._config.warning_interval == 0:
            self._spawn(self.post_timeout_warning(remaining))

    def _on_timeout(self, _: None) -> None:
        self._spawn(self.post_timeout())

    async def _handle_resume(self, ack, body) -> None:
        """Handle the "I'm back" button click.

        Args:
            ack: Slack acknowledge function.
            body: Request body from Slack.
        """
        await ack()

        user = body.get("user", {}).get("id", "unknown")
        if not self.attached:
            logger.info(f"Ignoring resume from {user}: source detached")
            return

        logger.info(f"Received resume action from {user}")
        self.on_interrupt.emit(
            InterruptArgs(self, {"slack_user": user}, force=True)
        )


def format_duration(seconds: float) -> str:
    """Format a duration as a short human-readable string.

    Returns:
        String like "45s", "5m 30s" or "2h 15m".
    """
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        minutes, secs = divmod(seconds, 60)
        return f"{minutes}m {secs}s" if secs else f"{minutes}m"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"


def format_idle_start(idle_seconds: float, timeout: float) -> list[dict]:
    """Format the idle-start message as Slack Block Kit blocks.

    Args:
        idle_seconds: Configured idle duration.
        timeout: Configured timeout; 0 when disabled.

    Returns:
        List of Slack Block Kit block dicts.
    """
    if timeout > 0:
        detail = f"Session times out in {format_duration(timeout)} unless you return."
    else:
        detail = "No timeout is configured."

    return [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": "💤 You are idle",
                "emoji": True,
            },
        },
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f"No activity for *{format_duration(idle_seconds)}*. {detail}"
                ),
            },
        },
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f"Idle since {datetime.now().strftime('%H:%M:%S')}",
                },
            ],
        },
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {
                        "type": "plain_text",
                        "text": "👋 I'm back",
                        "emoji": True,
                    },
                    "style": "primary",
                    "action_id": RESUME_ACTION_ID,
                    "value": "resume",
                },
            ],
        },
    ]


def format_timeout_warning(remaining: int) -> list[dict]:
    """Format a countdown warning."""
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"⏳ Timing out in *{format_duration(remaining)}*",
            },
        },
    ]


def format_timeout() -> list[dict]:
    """Format the timeout message."""
    return [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": "⌛ Timed out",
                "emoji": True,
            },
        },
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": "Watching has stopped.",
                },
            ],
        },
    ]


def format_idle_end() -> list[dict]:
    """Format the replacement for the idle-start message."""
    return [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": "⌨️ Active again",
                "emoji": True,
            },
        },
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f"Back at {datetime.now().strftime('%H:%M:%S')}",
                },
            ],
        },
    ]
