"""Prometheus metrics for planning, recovery, polling and notifications."""

import logging

from prometheus_client import Counter, Histogram, start_http_server

from .config import get_settings

logger = logging.getLogger(__name__)

plans_generated_total = Counter("plans_generated_total", "Plan generation attempts", ["result"])
plan_latency_seconds = Histogram("plan_latency_seconds", "Plan generation latency (seconds)")
recovery_decisions_total = Counter("recovery_decisions_total", "Recovery decisions", ["decision"])
jobs_submitted_total = Counter("jobs_submitted_total", "Jobs submitted to the executor service")
jobs_terminal_total = Counter("jobs_terminal_total", "Jobs that reached a terminal status", ["status"])
poll_errors_total = Counter("poll_errors_total", "Status polls that failed to reach the executor")
notifications_total = Counter("notifications_total", "Channel notifications", ["result"])


def start_metrics_server_if_enabled() -> bool:
    cfg = get_settings()
    if not cfg.METRICS_PORT:
        return False
    try:
        start_http_server(cfg.METRICS_PORT)
    except OSError:
        logger.exception("failed to start metrics server on port %s", cfg.METRICS_PORT)
        return False
    logger.info("metrics server listening on :%s", cfg.METRICS_PORT)
    return True
