"""Error taxonomy for the pipeline.

Retryable provider errors (RateLimitedError, ProviderUnavailableError,
TransportError) are handled inside the ModelGateway. They only escape it once
the attempt ceiling is hit, at which point ``attempts`` is set. The driver
wraps anything that escapes a stage in StageFailureError.

Two outcomes are not exceptions: an unparseable review (a
forced revision) and an exhausted cycle budget (a best-effort artifact).
"""


class SpecPipeError(Exception):
    """Base class for all pipeline errors."""


class UnknownModelError(SpecPipeError, ValueError):
    def __init__(self, model: str):
        super().__init__(f"Unknown model '{model}'. Add it to the 'models' table in config.yaml.")
        self.model = model


class CredentialMissingError(SpecPipeError):
    def __init__(self, missing: dict[str, list[str]]):
        # missing: provider -> models that need it
        parts = [
            f"{provider} API key is required for {', '.join(sorted(models))}"
            for provider, models in sorted(missing.items())
        ]
        super().__init__("; ".join(parts))
        self.missing = missing


class ModelGatewayError(SpecPipeError):
    """A classified provider failure."""

    retryable = False

    def __init__(self, message: str, provider: str = "", status: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status = status
        self.attempts = 1


class AuthRejectedError(ModelGatewayError):
    """Provider rejected the credential (401/403). Never retried."""


class ProviderRequestError(ModelGatewayError):
    """Any other non-retryable provider error (e.g. 400 bad request)."""


class RetryableProviderError(ModelGatewayError):
    retryable = True


class RateLimitedError(RetryableProviderError):
    def __init__(self, message: str, provider: str = "", status: int | None = None,
                 retry_after: float | None = None):
        super().__init__(message, provider=provider, status=status)
        self.retry_after = retry_after


class ProviderUnavailableError(RetryableProviderError):
    """5xx-class failure on the provider side."""


class TransportError(RetryableProviderError):
    """Connection, DNS or timeout failure before a response arrived."""


class StageFailureError(SpecPipeError):
    """Fatal: a stage could not produce one of its artifacts."""

    def __init__(self, stage_kind: str, artifact_type: str | None, cause: BaseException):
        where = f"{stage_kind}/{artifact_type}" if artifact_type else stage_kind
        super().__init__(f"Stage '{where}' failed: {cause}")
        self.stage_kind = stage_kind
        self.artifact_type = artifact_type
        self.cause = cause
