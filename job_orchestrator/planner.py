import logging
import time
from typing import Optional

from .config import get_settings
from .errors import EmptyPlanError, OrchestrationError, PlanParseError
from .llm_client import LLMProvider
from .metrics import plan_latency_seconds, plans_generated_total
from .models import JobPlan, JobStep, new_step_id
from .parsing import loads_fenced
from .prompts import build_plan_prompt

logger = logging.getLogger(__name__)


class PlanGenerator:
    """One upfront model call turning a user request into an ordered JobPlan."""

    def __init__(self, llm: LLMProvider, max_tokens: Optional[int] = None):
        self.llm = llm
        self.max_tokens = max_tokens or get_settings().PLAN_MAX_TOKENS

    async def generate_plan(self, user_message: str) -> JobPlan:
        start = time.perf_counter()
        try:
            output = await self.llm.complete(build_plan_prompt(user_message), max_tokens=self.max_tokens)
            plan = self.parse_plan(user_message, output)
        except OrchestrationError as e:
            plans_generated_total.labels(result=type(e).__name__).inc()
            logger.warning("plan generation failed: %s", e)
            raise
        plans_generated_total.labels(result="ok").inc()
        plan_latency_seconds.observe(time.perf_counter() - start)
        logger.info("generated plan with %d steps: %s", len(plan.steps), plan.actions())
        return plan

    @staticmethod
    def parse_plan(user_message: str, output: str) -> JobPlan:
        try:
            items = loads_fenced(output)
        except ValueError as e:
            raise PlanParseError(f"plan is not valid JSON: {e}", raw=output) from e
        if not isinstance(items, list):
            raise PlanParseError(f"plan must be a JSON array, got {type(items).__name__}", raw=output)
        if not items:
            raise EmptyPlanError("model returned an empty plan", raw=output)

        steps = []
        for position, item in enumerate(items):
            if not isinstance(item, dict):
                raise PlanParseError(f"plan step {position + 1} is not an object", raw=output)
            action = item.get("action")
            params = item.get("params")
            # The model's own numbering is not trusted
            steps.append(JobStep(
                id=new_step_id(),
                order=position + 1,
                action=action if isinstance(action, str) and action else "unknown",
                params=params if params is not None else {},
                status="pending",
            ))
        return JobPlan(description=user_message, steps=steps)
