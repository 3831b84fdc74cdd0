from .formatter import format_instant_alert, format_morning_digest, time_ago
from .telegram import SendResult, TelegramNotifier

__all__ = ['format_instant_alert', 'format_morning_digest', 'time_ago', 'SendResult', 'TelegramNotifier']
