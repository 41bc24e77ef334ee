import json
from typing import Sequence

from .models import ACTION_VOCABULARY, JobStep


def build_plan_prompt(user_message: str) -> str:
    """
    Prompt asking the model to decompose a request into executor actions.
    The model must answer with a bare JSON array.
    """
    actions = "\n".join(f'- "{name}": {desc}' for name, desc in ACTION_VOCABULARY.items())
    return (
        "You are a task planner for an AI agent. Given a user request, break it down "
        "into a sequence of executable steps.\n\n"
        f"Available actions:\n{actions}\n\n"
        f"User request: {json.dumps(user_message)}\n\n"
        "Create a step-by-step execution plan. Each step should have:\n"
        "- order: Step number (1, 2, 3...)\n"
        "- action: One of the available actions\n"
        "- params: Parameters needed for that action\n\n"
        "Example:\n"
        'User: "Find HVAC companies in Miami with 50-300 reviews and get me the point of contact"\n'
        "Plan:\n"
        '[{"order": 1, "action": "discover", "params": {"niche": "hvac", "location": "Miami, FL", "limit": 50}},\n'
        ' {"order": 2, "action": "enrich", "params": {"businesses": "{from_step_1}"}}]\n\n'
        "Respond with ONLY a JSON array of steps. No explanation."
    )


def build_recovery_prompt(failed_step: JobStep, error_message: str, remaining_steps: Sequence[JobStep]) -> str:
    remaining = json.dumps([s.action for s in remaining_steps])
    return (
        "A task execution step failed. Decide how to recover.\n\n"
        f"Failed step: {failed_step.order} - {failed_step.action}\n"
        f"Error: {error_message}\n"
        f"Remaining steps: {remaining}\n\n"
        "Options:\n"
        "1. SKIP: Skip this step and continue with remaining steps\n"
        "2. RETRY: Retry the same step with modified parameters\n"
        "3. ALTERNATIVE: Use a different action to achieve the same goal\n"
        "4. ABORT: The failure is unrecoverable, abort the job\n\n"
        "Respond with a JSON object:\n"
        "{\n"
        '  "decision": "SKIP" | "RETRY" | "ALTERNATIVE" | "ABORT",\n'
        '  "reason": "explanation",\n'
        '  "modified_step": {"action": "...", "params": {...}}\n'
        "}\n"
        "Include modified_step only for RETRY or ALTERNATIVE. Return STRICT JSON only."
    )
