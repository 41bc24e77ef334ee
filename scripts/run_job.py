#!/usr/bin/env python3
"""Plan, submit and follow one autonomous job from the command line."""
import argparse
import asyncio
import json
import sys

import httpx

from job_orchestrator.channels import LoggingChannel
from job_orchestrator.classifier import is_complex
from job_orchestrator.config import get_settings
from job_orchestrator.errors import OrchestrationError
from job_orchestrator.formatter import format_job_results
from job_orchestrator.logging_setup import setup_logging
from job_orchestrator.orchestrator import JobOrchestrator
from job_orchestrator.poller import JobPoller


async def main(args) -> int:
    cfg = get_settings()
    print(f"complex request: {is_complex(args.message)}")
    async with httpx.AsyncClient() as http:
        orch = JobOrchestrator.from_settings(http, cfg)
        if args.log_only:
            orch.channel = LoggingChannel()
        try:
            plan = await orch.planner.generate_plan(args.message)
        except OrchestrationError as e:
            print(f"planning failed: {e}", file=sys.stderr)
            return 1
        print(json.dumps(plan.model_dump(), indent=2))
        if args.plan_only:
            return 0

        job_id = await orch.executor.submit(args.user, plan)
        print(f"submitted job {job_id}")
        poller = JobPoller(
            job_id,
            args.chat,
            orch.executor,
            orch.channel,
            poll_interval=cfg.POLL_INTERVAL_SECONDS,
            error_backoff=cfg.POLL_ERROR_BACKOFF_SECONDS,
            deadline=args.deadline or None,
        )
        try:
            outcome = await poller.run_until_complete()
        except OrchestrationError as e:
            print(f"stopped: {e}", file=sys.stderr)
            return 1
        print(format_job_results(outcome.results))
        return 0 if outcome.succeeded else 2


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("message", help="user request to plan and execute")
    parser.add_argument("--user", default="cli", help="user id sent to the executor service")
    parser.add_argument("--chat", default="cli", help="channel target for progress notifications")
    parser.add_argument("--plan-only", action="store_true", help="print the plan and exit")
    parser.add_argument("--log-only", action="store_true", help="log notifications instead of sending them")
    parser.add_argument("--deadline", type=float, default=0, help="give up after N seconds (0 = never)")
    setup_logging()
    sys.exit(asyncio.run(main(parser.parse_args())))
