"""Error taxonomy shared by the services and the orchestrator."""

from typing import Optional


class SlideForgeError(Exception):
    """Base class for every error raised by the generation pipeline."""


class InputValidationError(SlideForgeError, ValueError):
    """Caller input is missing or out of range. Never retried."""


class CapabilityUnavailableError(SlideForgeError):
    """An upstream model, provider or service was never configured or cannot be reached."""


class UpstreamBusyError(SlideForgeError):
    """The upstream service answered 503 or an equivalent server-busy signal."""


class RateLimitedError(UpstreamBusyError):
    """The upstream service answered 429 or raised a quota error."""


class MalformedResponseError(SlideForgeError):
    """The upstream answer could not be parsed into the expected structure."""

    def __init__(self, message: str, raw_text: Optional[str] = None):
        super().__init__(message)
        self.raw_text = raw_text


class RetryExhaustedError(SlideForgeError):
    """Every attempt allowed by a retry policy failed."""

    def __init__(self, label: str, attempts: int, last_kind=None, last_error: Optional[BaseException] = None):
        self.label = label
        self.attempts = attempts
        self.last_kind = last_kind
        self.last_error = last_error
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")


class ImageGenerationError(SlideForgeError):
    """A single slide image could not be produced. Never aborts sibling images."""


class AssemblyError(SlideForgeError):
    """The presentation writer could not produce output bytes."""
