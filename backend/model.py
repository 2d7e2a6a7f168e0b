# backend/model.py
import json
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import GenerationError, InsufficientCredit, MalformedResponse

PredictionStatus = Literal["starting", "processing", "succeeded", "failed", "canceled"]

TRANSIENT_STATUSES = ("starting", "processing")
TERMINAL_STATUSES = ("succeeded", "failed", "canceled")

PNG_MIME_TYPE = "image/png"


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Both optional so a missing field is reported as InvalidInput (400), not 422
    user_id: Optional[str] = Field(default=None, alias="userId")
    prompt: Optional[str] = None


class GenerateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    credit_balance: Optional[int] = Field(default=None, alias="creditBalance")
    result_image: Optional[str] = Field(default=None, alias="resultImage")


class CreditsResponse(BaseModel):
    success: bool
    credits: int
    user: Dict[str, Any]


class Account(BaseModel):
    id: str
    name: Optional[str] = None
    credit_balance: int = Field(default=0, ge=0)


class PredictionHandle(BaseModel):
    """
    An in-progress upstream generation job.
    The poller replaces status/output/error in place until the status is terminal.
    """

    id: str
    status_url: str
    status: PredictionStatus
    output: Optional[Any] = None
    error: Optional[str] = None

    @field_validator("error", mode="before")
    @classmethod
    def _stringify_error(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value, default=str)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @staticmethod
    def looks_like_prediction(payload: Any) -> bool:
        return isinstance(payload, dict) and bool(payload.get("id")) and bool(payload.get("status"))

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], endpoint: str = "") -> "PredictionHandle":
        """
        Build a handle from an upstream prediction object.
        The status URL is urls.get when present, otherwise <endpoint>/<id>.
        """
        prediction_id = str(payload["id"])
        urls = payload.get("urls") or {}
        status_url = urls.get("get") if isinstance(urls, dict) else None
        if not status_url:
            status_url = f"{endpoint.rstrip('/')}/{prediction_id}"
        try:
            return cls(
                id=prediction_id,
                status_url=status_url,
                status=payload["status"],
                output=payload.get("output"),
                error=payload.get("error"),
            )
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected prediction status: {payload.get('status')}") from e

    def update_from(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            raise MalformedResponse("Prediction status response is not an object")
        try:
            refreshed = PredictionHandle(
                id=self.id,
                status_url=self.status_url,
                status=payload.get("status"),
                output=payload.get("output"),
                error=payload.get("error"),
            )
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected prediction status: {payload.get('status')}") from e
        self.status = refreshed.status
        self.output = refreshed.output
        self.error = refreshed.error


class CanonicalImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    base64_payload: str = Field(min_length=1)
    mime_type: Literal["image/png"] = PNG_MIME_TYPE

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_payload}"


@dataclass(frozen=True)
class GenerationSuccess:
    image: CanonicalImage
    credit_balance: int

    def to_response(self) -> GenerateResponse:
        return GenerateResponse(
            success=True,
            message="Image generated successfully",
            credit_balance=self.credit_balance,
            result_image=self.image.data_uri,
        )


@dataclass(frozen=True)
class GenerationFailure:
    error: GenerationError

    @property
    def status_code(self) -> int:
        return self.error.status_code

    def to_response(self) -> GenerateResponse:
        balance = self.error.balance if isinstance(self.error, InsufficientCredit) else None
        return GenerateResponse(success=False, message=self.error.message, credit_balance=balance)


GenerationResult = Union[GenerationSuccess, GenerationFailure]
