"""
Telegram notifier — delivers formatted text blocks to one chat.
"""

from typing import Any

from aiogram import Bot

from volscan.config.schemas import TelegramConfig
from volscan.utils.logger import get_logger

logger = get_logger(__name__)


class TelegramNotifier:
    """
    Sends messages to the configured chat through an aiogram Bot.

    Delivery failures are logged and reported through the return value;
    they never abort an evaluation cycle.
    """

    def __init__(self, config: TelegramConfig, bot: Any | None = None) -> None:
        if bot is None:
            if not config.bot_token:
                raise ValueError("Telegram bot token is not configured")
            bot = Bot(token=config.bot_token)
        if not config.chat_id:
            raise ValueError("Telegram chat ID is not configured")

        self.config = config
        self.bot = bot
        self._sent = 0
        self._failed = 0

    @property
    def sent_count(self) -> int:
        return self._sent

    @property
    def failed_count(self) -> int:
        return self._failed

    async def send(self, text: str) -> bool:
        """Send one message; returns False if Telegram rejected it."""
        try:
            await self.bot.send_message(
                chat_id=self.config.chat_id,
                text=text,
                parse_mode=self.config.parse_mode,
            )
        except Exception as e:
            self._failed += 1
            logger.error("telegram_send_failed", error=str(e), length=len(text))
            return False

        self._sent += 1
        logger.info("telegram_message_sent", length=len(text))
        return True

    async def send_many(self, messages: list[str]) -> int:
        """Send messages in order; returns how many were delivered."""
        delivered = 0
        for text in messages:
            if await self.send(text):
                delivered += 1
        return delivered

    async def close(self) -> None:
        session = getattr(self.bot, "session", None)
        if session is not None:
            await session.close()
