from .client import TelegramChannelClient

__all__ = ["TelegramChannelClient"]
