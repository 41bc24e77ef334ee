import logging
from typing import List, Optional, Sequence

from .config import get_settings
from .errors import RecoveryAbortedError, RecoveryParseError
from .llm_client import LLMProvider
from .metrics import recovery_decisions_total
from .models import JobStep, ModifiedStep, RecoveryDecision, RecoveryKind, new_step_id
from .parsing import loads_fenced
from .prompts import build_recovery_prompt

logger = logging.getLogger(__name__)


class RecoveryPlanner:
    """Decides, once per failed step, how the remaining plan should continue."""

    def __init__(self, llm: LLMProvider, max_tokens: Optional[int] = None):
        self.llm = llm
        self.max_tokens = max_tokens or get_settings().RECOVERY_MAX_TOKENS

    async def recover(self, failed_step: JobStep, error_message: str, remaining_steps: Sequence[JobStep]) -> List[JobStep]:
        decision = await self.decide(failed_step, error_message, remaining_steps)
        return self.apply_decision(decision, failed_step, remaining_steps)

    async def decide(self, failed_step: JobStep, error_message: str, remaining_steps: Sequence[JobStep]) -> RecoveryDecision:
        prompt = build_recovery_prompt(failed_step, error_message, remaining_steps)
        output = await self.llm.complete(prompt, max_tokens=self.max_tokens)
        decision = self.parse_decision(output)
        recovery_decisions_total.labels(decision=decision.kind.value).inc()
        logger.info(
            "recovery decision for step %s (%s): %s (%s)",
            failed_step.order, failed_step.action, decision.kind.value, decision.reason,
        )
        return decision

    @staticmethod
    def parse_decision(output: str) -> RecoveryDecision:
        """Decode the model's answer.

        Unusable output raises RecoveryParseError. ABORT, or a decision value we do
        not recognise, raises RecoveryAbortedError so the job never silently continues.
        """
        try:
            data = loads_fenced(output)
        except ValueError as e:
            raise RecoveryParseError(f"recovery response is not valid JSON: {e}", raw=output) from e
        if not isinstance(data, dict):
            raise RecoveryParseError("recovery response must be a JSON object", raw=output)
        if "decision" not in data:
            raise RecoveryParseError("recovery response has no 'decision' field", raw=output)

        raw_decision = data.get("decision")
        reason = data.get("reason")
        reason = reason if isinstance(reason, str) and reason else None
        try:
            kind = RecoveryKind(str(raw_decision).strip().upper())
        except ValueError:
            recovery_decisions_total.labels(decision="UNRECOGNIZED").inc()
            raise RecoveryAbortedError(reason, decision=str(raw_decision))
        if kind is RecoveryKind.ABORT:
            recovery_decisions_total.labels(decision=kind.value).inc()
            raise RecoveryAbortedError(reason, decision=kind.value)

        modified = data.get("modified_step")
        return RecoveryDecision(
            kind=kind,
            reason=reason,
            modified_step=ModifiedStep.model_validate(modified) if isinstance(modified, dict) else None,
        )

    @staticmethod
    def apply_decision(decision: RecoveryDecision, failed_step: JobStep, remaining_steps: Sequence[JobStep]) -> List[JobStep]:
        remaining = list(remaining_steps)
        if decision.kind is RecoveryKind.SKIP:
            return remaining
        if decision.replaces_step:
            modified = decision.modified_step or ModifiedStep()
            replacement = JobStep(
                id=new_step_id(),
                order=failed_step.order,
                action=modified.action or failed_step.action,
                params=modified.params if modified.params is not None else failed_step.params,
                status="pending",
            )
            return [replacement] + remaining
        raise RecoveryAbortedError(decision.reason, decision=decision.kind.value)
