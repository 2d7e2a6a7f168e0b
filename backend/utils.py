import re
import time
import uuid
from typing import Optional

_DATA_URI_IMAGE_PREFIX = re.compile(r"^data:image/\w+;base64,")


def gen_request_id() -> str:
    return uuid.uuid4().hex[:12]


def get_timestamp_ms() -> int:
    return int(time.time() * 1000)


def is_http_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def data_uri_payload(value: str) -> Optional[str]:
    """
    Payload after the first comma of a data URI, e.g.
    "data:image/png;base64,QUJD" -> "QUJD". None if there is no comma.
    """
    _, sep, payload = value.partition(",")
    if not sep:
        return None
    return payload


def strip_image_data_uri(value: str) -> str:
    return _DATA_URI_IMAGE_PREFIX.sub("", value, count=1)


def preview(text: str, limit: int = 50) -> str:
    """Shorten text for log lines."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."
