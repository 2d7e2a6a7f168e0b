# backend/errors.py
from typing import Optional


class GenerationError(Exception):
    """
    Base class for every failure a generation request can end in.
    Carries a human-readable message and the HTTP status reported to the caller.
    """

    status_code: int = 500
    default_message: str = "Image generation failed"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidInput(GenerationError):
    status_code = 400
    default_message = "Missing userId or prompt."


class UnknownAccount(GenerationError):
    status_code = 404
    default_message = "User not found."


class InsufficientCredit(GenerationError):
    status_code = 403
    default_message = "No Credit Balance"

    def __init__(self, balance: int, message: Optional[str] = None):
        self.balance = balance
        super().__init__(message)


class ConfigurationError(GenerationError):
    default_message = (
        "Hugging Face API token not configured. "
        "Please check HF_TOKEN environment variable."
    )


class MalformedResponse(GenerationError):
    default_message = "Upstream returned a response that could not be interpreted"


class PollTimeout(GenerationError):
    default_message = "Image generation is still processing after polling"


class RequestTimeout(GenerationError):
    default_message = "Image generation timed out"


class UpstreamReportedError(GenerationError):
    default_message = "Image generation failed"


class NoImageData(GenerationError):
    default_message = "No image data returned from Hugging Face API."


class TransportError(GenerationError):
    default_message = "Could not reach the image generation service"


def upstream_status(status_code: Optional[int]) -> Optional[int]:
    """Keep an upstream status only when it is an error status."""
    if status_code is not None and status_code >= 400:
        return status_code
    return None
