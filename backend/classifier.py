# backend/classifier.py
"""
Classify a raw upstream reply into one of two shapes:

- BinaryBlob: opaque image bytes
- JsonObject: a parsed JSON value (error object, embedded image, prediction)

Pure: no network, no side effects.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from .errors import MalformedResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BinaryBlob:
    data: bytes
    content_type: Optional[str] = None


@dataclass(frozen=True)
class JsonObject:
    value: Any


UpstreamResponse = Union[BinaryBlob, JsonObject]


def _classify_bytes(raw: bytes, content_type: Optional[str]) -> UpstreamResponse:
    try:
        text = raw.decode("utf-8")
        parsed = json.loads(text)
    except (UnicodeDecodeError, ValueError):
        # Not JSON, keep the bytes as an image
        return BinaryBlob(raw, content_type)

    if text.strip().startswith(("{", "[")):
        return JsonObject(parsed)
    return BinaryBlob(raw, content_type)


def classify(raw: Any, content_type: Optional[str] = None) -> UpstreamResponse:
    """
    Determine the shape of whatever the upstream transport yielded.

    bytes/bytearray/memoryview -> JsonObject when it is JSON text starting
    with { or [, otherwise BinaryBlob. str -> JsonObject or MalformedResponse.
    dict/list -> JsonObject.
    """
    if isinstance(raw, (bytes, bytearray, memoryview)):
        shape = _classify_bytes(bytes(raw), content_type)
    elif isinstance(raw, str):
        try:
            shape = JsonObject(json.loads(raw))
        except ValueError as e:
            raise MalformedResponse("Upstream returned text that is not valid JSON") from e
    elif isinstance(raw, (dict, list)):
        shape = JsonObject(raw)
    else:
        raise MalformedResponse(f"Unsupported upstream response type: {type(raw).__name__}")

    logger.debug("[Classifier] %s (content-type=%s)", type(shape).__name__, content_type)
    return shape
