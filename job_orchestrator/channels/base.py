import logging
from typing import List, Optional, Tuple


class Channel:
    """A destination for notifications. `target` is channel specific (chat id, room...)."""

    async def send(self, target: str, text: str) -> None:
        raise NotImplementedError


class LoggingChannel(Channel):
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("job_orchestrator.channels.logging")
        self.sent: List[Tuple[str, str]] = []

    async def send(self, target: str, text: str) -> None:
        self.sent.append((target, text))
        self.logger.info("LoggingChannel: would send to %s: %s", target, text)
