import logging
import os
from logging.handlers import TimedRotatingFileHandler
from typing import Optional

from .config import get_settings

LOG_FORMAT = '[%(asctime)s] %(levelname)s %(name)s: %(message)s'

logger = logging.getLogger("job_orchestrator")

file_handler: Optional[TimedRotatingFileHandler] = None


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> None:
    """Install the stream handler (and a daily rotating file when a log dir is set)."""
    global file_handler
    cfg = get_settings()
    level = level or cfg.LOG_LEVEL
    log_dir = log_dir if log_dir is not None else cfg.LOG_DIR

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT)

    close_logging()
    handlers = []
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, "job_orchestrator.log")
        # Daily rotation, keep 14 days
        file_handler = TimedRotatingFileHandler(log_file, when="midnight", interval=1, backupCount=14)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)
    root_logger.handlers = handlers
    root_logger.info("[BOOT] Logging initialized (level=%s, dir=%s)", level, log_dir or "-")


def close_logging() -> None:
    global file_handler
    if file_handler:
        file_handler.close()
        file_handler = None
