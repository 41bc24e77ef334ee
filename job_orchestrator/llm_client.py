"""
Language-model providers used by the plan generator and the recovery planner.

Every provider exposes `complete(prompt, max_tokens=...) -> str`. HTTP providers
share one injected httpx.AsyncClient; each call is bounded by its own timeout.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from .config import Settings, get_settings
from .errors import LLMResponseError, LLMStatusError, LLMTransportError

logger = logging.getLogger(__name__)

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"


class LLMProvider:
    async def complete(self, prompt: str, max_tokens: int = 1000, **kwargs) -> str:
        raise NotImplementedError


class FakeLLM(LLMProvider):
    """Deterministic provider for tests and dry runs.

    Responses are consumed in order; the last one repeats once the list is exhausted.
    """

    def __init__(self, responses: Union[str, Sequence[str], None] = None):
        if responses is None:
            responses = ['[{"order": 1, "action": "discover", "params": {}}]']
        self.responses: List[str] = [responses] if isinstance(responses, str) else list(responses)
        self.prompts: List[str] = []

    async def complete(self, prompt: str, max_tokens: int = 1000, **kwargs) -> str:
        self.prompts.append(prompt)
        index = min(len(self.prompts), len(self.responses)) - 1
        return self.responses[index]


class _HTTPProvider(LLMProvider):
    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        model: str,
        url: str,
        timeout: float = 60.0,
        max_attempts: int = 1,
    ):
        self.http = http
        self.api_key = api_key
        self.model = model
        self.url = url
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))

    def _headers(self) -> Dict[str, str]:
        raise NotImplementedError

    def _payload(self, prompt: str, max_tokens: int, **kwargs) -> Dict[str, Any]:
        raise NotImplementedError

    def _extract_text(self, data: Any) -> Optional[str]:
        raise NotImplementedError

    async def complete(self, prompt: str, max_tokens: int = 1000, **kwargs) -> str:
        payload = self._payload(prompt, max_tokens, **kwargs)
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(1),
            retry=retry_if_exception_type(LLMTransportError),
            reraise=True,
        ):
            with attempt:
                resp = await self._post(payload)
        if not resp.is_success:
            logger.error("LLM error: %s %s", resp.status_code, resp.text)
            raise LLMStatusError(resp.status_code, resp.text)
        try:
            data = resp.json()
        except ValueError as e:
            raise LLMResponseError(f"LLM response is not JSON: {e}", raw=resp.text) from e
        text = self._extract_text(data)
        if not isinstance(text, str):
            raise LLMResponseError("No content in LLM response", raw=resp.text)
        return text

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        try:
            return await self.http.post(self.url, headers=self._headers(), json=payload, timeout=self.timeout)
        except httpx.TimeoutException as e:
            logger.warning("LLM request timed out after %ss", self.timeout)
            raise LLMTransportError(f"LLM request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.warning("LLM request failed: %s", e)
            raise LLMTransportError(f"LLM request failed: {e}") from e


class AnthropicLLM(_HTTPProvider):
    def __init__(self, http: httpx.AsyncClient, api_key: str, model: str, base_url: Optional[str] = None, **kwargs):
        super().__init__(http, api_key, model, base_url or ANTHROPIC_URL, **kwargs)

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def _payload(self, prompt: str, max_tokens: int, **kwargs) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        payload.update(kwargs)
        return payload

    def _extract_text(self, data: Any) -> Optional[str]:
        try:
            return data["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None


class OpenAILLM(_HTTPProvider):
    def __init__(self, http: httpx.AsyncClient, api_key: str, model: str, base_url: Optional[str] = None, **kwargs):
        super().__init__(http, api_key, model, base_url or OPENAI_URL, **kwargs)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, prompt: str, max_tokens: int, **kwargs) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": 0.2,
        }
        payload.update(kwargs)
        return payload

    def _extract_text(self, data: Any) -> Optional[str]:
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None


def build_llm(http: httpx.AsyncClient, settings: Optional[Settings] = None) -> LLMProvider:
    cfg = settings or get_settings()
    provider = cfg.LLM_PROVIDER.lower()
    common = dict(
        base_url=cfg.LLM_BASE_URL or None,
        timeout=cfg.LLM_TIMEOUT_SECONDS,
        max_attempts=cfg.LLM_MAX_ATTEMPTS,
    )
    if provider == "anthropic":
        return AnthropicLLM(http, cfg.LLM_API_KEY, cfg.LLM_MODEL, **common)
    if provider == "openai":
        return OpenAILLM(http, cfg.LLM_API_KEY, cfg.LLM_MODEL, **common)
    if provider == "fake":
        logger.warning("Using FakeLLM provider; plans will be canned")
        return FakeLLM()
    raise ValueError(f"Provider {cfg.LLM_PROVIDER} not supported.")
