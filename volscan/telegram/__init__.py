"""Telegram notification collaborator"""

from volscan.telegram.formatter import ReportFormatter
from volscan.telegram.notifier import TelegramNotifier

__all__ = ["ReportFormatter", "TelegramNotifier"]
