"""
Notification sinks - deliver high CO2 alerts to the user
"""

import logging
from typing import Protocol

from aiogram import Bot

from co2_client.services.alerts import Alert

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def notify(self, title: str, body: str) -> None: ...


class LogNotifier:
    """Writes alerts to the log. Used when no Telegram chat is configured."""

    async def notify(self, title: str, body: str) -> None:
        logger.warning(f"🔔 {title} {body}")


class TelegramNotifier:
    """Sends alerts to a Telegram chat through the bot API."""

    def __init__(self, bot: Bot, chat_id: int):
        self.bot = bot
        self.chat_id = chat_id

    async def notify(self, title: str, body: str) -> None:
        await self.bot.send_message(
            chat_id=self.chat_id,
            text=f"⚠️ <b>{title}</b>\n\n{body}",
            parse_mode="HTML",
        )

    async def close(self) -> None:
        await self.bot.session.close()


async def safe_notify(sink: NotificationSink, alert: Alert) -> None:
    """Deliver an alert; delivery errors are logged and never raised."""
    try:
        await sink.notify(alert.title, alert.body)
    except Exception as e:
        logger.error(f"Failed to send notification ({alert.level} ppm): {e}")


def build_notifier(settings) -> NotificationSink:
    """Telegram sink when the bot is configured, log sink otherwise."""
    if settings.telegram_enabled:
        logger.info(f"🔔 Alerts go to Telegram chat {settings.alert_chat_id}")
        return TelegramNotifier(Bot(token=settings.bot_token), settings.alert_chat_id)
    return LogNotifier()
