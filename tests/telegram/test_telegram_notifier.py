"""Tests for TelegramNotifier."""

from unittest.mock import AsyncMock

import pytest

from volscan.config.schemas import TelegramConfig
from volscan.telegram.notifier import TelegramNotifier


@pytest.fixture
def config() -> TelegramConfig:
    return TelegramConfig(bot_token="123:abc", chat_id="42")


class TestTelegramNotifier:

    async def test_send(self, config):
        bot = AsyncMock()
        notifier = TelegramNotifier(config, bot=bot)

        assert await notifier.send("hello")
        bot.send_message.assert_awaited_once_with(chat_id="42", text="hello", parse_mode="HTML")
        assert notifier.sent_count == 1

    async def test_send_failure_is_reported(self, config):
        bot = AsyncMock()
        bot.send_message.side_effect = RuntimeError("blocked")
        notifier = TelegramNotifier(config, bot=bot)

        assert not await notifier.send("hello")
        assert notifier.failed_count == 1

    async def test_send_many_counts_delivered(self, config):
        bot = AsyncMock()
        bot.send_message.side_effect = [None, RuntimeError("flood"), None]
        notifier = TelegramNotifier(config, bot=bot)

        assert await notifier.send_many(["a", "b", "c"]) == 2
        sent = [call.kwargs["text"] for call in bot.send_message.await_args_list]
        assert sent == ["a", "b", "c"]

    async def test_close_closes_session(self, config):
        bot = AsyncMock()
        await TelegramNotifier(config, bot=bot).close()
        bot.session.close.assert_awaited_once()

    def test_missing_chat_id(self):
        with pytest.raises(ValueError):
            TelegramNotifier(TelegramConfig(bot_token="123:abc"), bot=AsyncMock())

    def test_missing_token(self):
        with pytest.raises(ValueError):
            TelegramNotifier(TelegramConfig(chat_id="42"))
