"""ModelGateway — one calling convention over the Anthropic and Google chat models.

Every call runs under a tenacity retry loop:
  - auth failures and other non-retryable errors surface on the first attempt,
  - rate limits wait for the provider's hint (+ buffer) or exponential backoff,
  - 5xx and transport failures use exponential backoff only.
Retry bookkeeping lives on the gateway instance; the driver builds one per run.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

from langchain_anthropic import ChatAnthropic
from langchain_google_genai import ChatGoogleGenerativeAI
from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception_type, stop_after_attempt

from specpipe.config import ApiKeys, get_config
from specpipe.errors import (
    CredentialMissingError,
    RateLimitedError,
    RetryableProviderError,
    UnknownModelError,
)
from specpipe.llm.classify import classify_error

JITTER_FRACTION = 0.2


@dataclass(frozen=True)
class ModelRequest:
    system_prompt: str
    user_message: str
    model: str  # alias from the config.yaml models table
    max_tokens: int = 8192
    temperature: float = 0.7


@dataclass(frozen=True)
class ModelResponse:
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class RateLimitWait:
    """Passed to the wait observer before each backoff sleep."""

    delay: float
    attempt: int
    max_attempts: int
    provider: str
    reason: str  # "rate_limit" | "server" | "transport"
    retry_after: float | None = None
    sustained: bool = False  # RetryStats.should_back_off() at the time of the wait


@dataclass
class RetryStats:
    """Per-gateway rate-limit bookkeeping."""

    consecutive_rate_limits: int = 0
    total_rate_limits: int = 0
    total_retries: int = 0
    last_retry_after: float | None = None

    def record_rate_limit(self, retry_after: float | None) -> None:
        self.consecutive_rate_limits += 1
        self.total_rate_limits += 1
        self.last_retry_after = retry_after

    def record_success(self) -> None:
        self.consecutive_rate_limits = 0

    def should_back_off(self) -> bool:
        return self.consecutive_rate_limits >= 3


def compute_backoff(
    attempt: int,
    base: float,
    max_delay: float,
    retry_after: float | None = None,
    buffer: float = 0.5,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay in seconds before retrying after the given (1-based) attempt.

    A provider hint wins when present. Otherwise base * 2^(attempt-1) with
    ±20% jitter. Both are capped at max_delay.
    """
    if retry_after is not None and retry_after > 0:
        return min(retry_after + buffer, max_delay)

    exponential = base * (2 ** (attempt - 1))
    jitter = exponential * JITTER_FRACTION * (rng() * 2 - 1)
    return min(max(exponential + jitter, 0.0), max_delay)


def format_duration(seconds: float) -> str:
    """Human-readable duration: 750ms, 42s, 2m 5s."""
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    whole = round(seconds)
    if whole < 60:
        return f"{whole}s"
    minutes, rest = divmod(whole, 60)
    return f"{minutes}m {rest}s"


def provider_for(model: str) -> str:
    """Return the provider name for a model alias."""
    entry = get_config().get("models", {}).get(model)
    if not entry:
        raise UnknownModelError(model)
    return entry["provider"]


def _model_id(model: str) -> str:
    entry = get_config()["models"][model]
    return entry.get("model_id", model)


def _message_text(content) -> str:
    """Flatten LangChain message content (str or list of blocks) into text."""
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class ModelGateway:
    def __init__(
        self,
        api_keys: ApiKeys,
        on_wait: Callable[[RateLimitWait], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self._api_keys = api_keys
        self._on_wait = on_wait
        self._sleep = sleep
        self._rng = rng
        self.stats = RetryStats()

    # --- credentials ---

    def missing_credentials(self, models) -> dict[str, list[str]]:
        """Return provider -> models for every model whose key is absent."""
        missing: dict[str, list[str]] = {}
        for model in dict.fromkeys(models):
            provider = provider_for(model)
            if not self._api_keys.for_provider(provider):
                missing.setdefault(provider, []).append(model)
        return missing

    def require_credentials(self, models) -> None:
        missing = self.missing_credentials(models)
        if missing:
            raise CredentialMissingError(missing)

    # --- provider calling conventions ---

    def _build_llm(self, provider: str, request: ModelRequest):
        api_key = self._api_keys.for_provider(provider)
        model_id = _model_id(request.model)
        # Retries are owned by the gateway, not the SDKs
        if provider == "anthropic":
            return ChatAnthropic(
                model=model_id,
                api_key=api_key,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                max_retries=0,
            )
        if provider == "google":
            return ChatGoogleGenerativeAI(
                model=model_id,
                google_api_key=api_key,
                max_output_tokens=request.max_tokens,
                temperature=request.temperature,
                max_retries=0,
            )
        raise UnknownModelError(request.model)

    async def _call_once(self, provider: str, request: ModelRequest) -> ModelResponse:
        messages = [
            {"role": "system", "content": request.system_prompt},
            {"role": "user", "content": request.user_message},
        ]
        try:
            llm = self._build_llm(provider, request)
            response = await llm.ainvoke(messages)
        except Exception as exc:
            classified = classify_error(exc, provider)
            if classified is exc:
                raise
            raise classified from exc

        usage = getattr(response, "usage_metadata", None) or {}
        return ModelResponse(
            content=_message_text(response.content),
            model=request.model,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )

    # --- retry policy ---

    def _wait(self, retry_state: RetryCallState) -> float:
        config = get_config()
        exc = retry_state.outcome.exception()
        retry_after = exc.retry_after if isinstance(exc, RateLimitedError) else None
        return compute_backoff(
            retry_state.attempt_number,
            base=config.get("backoff_base_seconds", 2.0),
            max_delay=config.get("backoff_max_seconds", 120.0),
            retry_after=retry_after,
            buffer=config.get("retry_after_buffer_seconds", 0.5),
            rng=self._rng,
        )

    def _before_sleep(self, provider: str, max_attempts: int):
        def _notify(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception()
            retry_after = None
            if isinstance(exc, RateLimitedError):
                retry_after = exc.retry_after
                self.stats.record_rate_limit(retry_after)
                reason = "rate_limit"
            elif exc.status is not None:
                reason = "server"
            else:
                reason = "transport"
            self.stats.total_retries += 1
            if self._on_wait is not None:
                self._on_wait(RateLimitWait(
                    delay=retry_state.next_action.sleep,
                    attempt=retry_state.attempt_number,
                    max_attempts=max_attempts,
                    provider=provider,
                    reason=reason,
                    retry_after=retry_after,
                    sustained=self.stats.should_back_off(),
                ))
        return _notify

    async def generate(self, request: ModelRequest) -> ModelResponse:
        """Call the model behind request.model, retrying transient failures."""
        provider = provider_for(request.model)
        self.require_credentials([request.model])

        max_attempts = get_config().get("llm_max_attempts", 5)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(RetryableProviderError),
            before_sleep=self._before_sleep(provider, max_attempts),
            sleep=self._sleep,
            reraise=False,
        )
        try:
            response = await retrying(self._call_once, provider, request)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            attempts = exc.last_attempt.attempt_number
            kind = "rate limit exceeded" if isinstance(last, RateLimitedError) else "request failed"
            terminal = type(last)(
                f"{provider} {kind} after {attempts} attempts: {last}",
                provider=last.provider,
                status=last.status,
            )
            terminal.attempts = attempts
            raise terminal from last

        self.stats.record_success()
        return response
