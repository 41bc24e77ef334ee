"""Exception hierarchy for the orchestration engine.

Transport errors are retried by the poll loop and surfaced immediately by the
one-shot operations (planning, recovery, submission). Parse errors mean the
remote side answered but the answer was unusable. RecoveryAbortedError is a
decision, not a malfunction: the model chose to abort (or answered with a
decision we do not recognise).
"""

from typing import Optional


class OrchestrationError(Exception):
    pass


class TransportError(OrchestrationError):
    pass


class LLMTransportError(TransportError):
    """Network failure or timeout talking to the language-model service."""


class LLMStatusError(TransportError):
    def __init__(self, status_code: int, body: str):
        super().__init__(f"LLM service returned {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class ExecutorServiceError(TransportError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ChannelDeliveryError(TransportError):
    pass


class ResponseParseError(OrchestrationError):
    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class LLMResponseError(ResponseParseError):
    """The model call succeeded but carried no text content."""


class PlanParseError(ResponseParseError):
    pass


class EmptyPlanError(ResponseParseError):
    pass


class RecoveryParseError(ResponseParseError):
    pass


class RecoveryAbortedError(OrchestrationError):
    DEFAULT_REASON = "Unknown reason"

    def __init__(self, reason: Optional[str] = None, decision: Optional[str] = None):
        self.reason = reason or self.DEFAULT_REASON
        self.decision = decision
        super().__init__(f"Recovery aborted: {self.reason}")


class PollingStopped(OrchestrationError):
    def __init__(self, job_id: str, message: str):
        super().__init__(message)
        self.job_id = job_id


class PollingCancelledError(PollingStopped):
    def __init__(self, job_id: str):
        super().__init__(job_id, f"polling cancelled for job {job_id}")


class PollingDeadlineExceeded(PollingStopped):
    def __init__(self, job_id: str, deadline: float):
        super().__init__(job_id, f"job {job_id} not finished after {deadline:g}s")
        self.deadline = deadline
