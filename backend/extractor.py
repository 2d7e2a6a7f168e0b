# backend/extractor.py
"""
Turn any resolved upstream value into one CanonicalImage (base64 PNG).

One extraction function per shape:

- PredictionHandle -> status check, then its output string
- JsonObject       -> "images"[0] / "image", or the upstream's error
- BinaryBlob       -> base64 of the raw bytes

Output strings are URLs (fetched), data URIs (payload kept) or bare base64.
Bare base64 is accepted on length alone unless strict validation is enabled.
"""
import base64
import binascii
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from .classifier import BinaryBlob, JsonObject, UpstreamResponse
from .errors import NoImageData, UpstreamReportedError
from .model import TRANSIENT_STATUSES, CanonicalImage, PredictionHandle
from .utils import data_uri_payload, is_http_url, strip_image_data_uri

logger = logging.getLogger(__name__)

FetchImage = Callable[[str], Awaitable[bytes]]


class ImageExtractor:
    def __init__(
        self,
        fetch_image: FetchImage,
        min_base64_length: int = 100,
        strict_base64: bool = False,
        endpoint: str = "",
    ):
        self.fetch_image = fetch_image
        self.min_base64_length = min_base64_length
        self.strict_base64 = strict_base64
        self.endpoint = endpoint

    async def extract(self, value: Union[UpstreamResponse, PredictionHandle]) -> CanonicalImage:
        if isinstance(value, PredictionHandle):
            payload = await self.from_prediction(value)
        elif isinstance(value, BinaryBlob):
            payload = self.from_blob(value)
        elif isinstance(value, JsonObject):
            payload = await self.from_json(value)
        else:
            raise TypeError(f"Cannot extract an image from {type(value).__name__}")
        return self._canonical(payload)

    def from_blob(self, blob: BinaryBlob) -> str:
        return base64.b64encode(blob.data).decode("ascii")

    async def from_prediction(self, handle: PredictionHandle) -> str:
        if handle.status == "failed":
            logger.error("[Extractor] Prediction %s failed: %s", handle.id, handle.error)
            raise UpstreamReportedError(handle.error or "Image generation failed")
        if handle.status == "canceled":
            raise UpstreamReportedError(handle.error or "Image generation was canceled")
        if handle.status in TRANSIENT_STATUSES:
            # The poller only hands over terminal handles
            raise RuntimeError(
                f"Prediction {handle.id} reached extraction with status {handle.status}"
            )

        output = handle.output
        if isinstance(output, (list, tuple)):
            output = output[0] if output else None
        if not output:
            raise NoImageData("Prediction succeeded but no valid image output found")
        if not isinstance(output, str):
            raise NoImageData("Prediction output format is unexpected")

        return await self._resolve_string(output, self.min_base64_length)

    async def from_json(self, obj: JsonObject) -> str:
        data = obj.value
        if PredictionHandle.looks_like_prediction(data):
            return await self.from_prediction(PredictionHandle.from_payload(data, self.endpoint))
        if not isinstance(data, dict):
            raise NoImageData("No image data found in JSON response")

        images = data.get("images")
        candidate: Optional[Any] = None
        if isinstance(images, list) and images and images[0]:
            candidate = images[0]
        elif data.get("image"):
            candidate = data["image"]

        if candidate is not None:
            if not isinstance(candidate, str):
                raise NoImageData("Image field in JSON response is not a string")
            return await self._resolve_string(candidate, 0)

        error = data.get("error") or data.get("message")
        if error:
            if not isinstance(error, str):
                error = json.dumps(error, default=str)
            raise UpstreamReportedError(error)
        raise NoImageData("No image data found in JSON response")

    async def _resolve_string(self, value: str, threshold: int) -> str:
        if is_http_url(value):
            content = await self.fetch_image(value)
            if not content:
                raise NoImageData("Image URL returned an empty body")
            return base64.b64encode(content).decode("ascii")

        if value.startswith("data:"):
            payload = data_uri_payload(value)
            if payload is None:
                raise NoImageData("Data URI has no payload")
            return payload

        if len(value) > threshold:
            return value
        raise NoImageData("Prediction succeeded but no valid image output found")

    def _canonical(self, payload: str) -> CanonicalImage:
        clean = strip_image_data_uri(payload.strip())
        if not clean:
            raise NoImageData()
        if self.strict_base64:
            try:
                base64.b64decode(clean, validate=True)
            except (binascii.Error, ValueError) as e:
                raise NoImageData("Image payload is not valid base64") from e
        return CanonicalImage(base64_payload=clean)
