# Messaging channels used to deliver job notifications

from .base import Channel, LoggingChannel
from .telegram import TelegramChannel
