import json
import logging
from typing import Any, Optional

import httpx

from .errors import (
    ConfigurationError,
    MalformedResponse,
    TransportError,
    UpstreamReportedError,
    upstream_status,
)
from .utils import preview

logger = logging.getLogger(__name__)


def error_message_from(response: httpx.Response, default: str) -> str:
    """
    Recover a readable message from an upstream error body.
    Prefers the JSON "error" field, then "message", then the raw text.
    """
    body = response.content
    if not body:
        return default
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        return default

    try:
        data = json.loads(text)
    except ValueError:
        return text.strip() or default

    if isinstance(data, dict):
        message = data.get("error") or data.get("message") or data.get("detail")
        if isinstance(message, str) and message:
            return message
        if message:
            return json.dumps(message, default=str)
    return default


class UpstreamClient:
    """
    Talks to the upstream prediction API: create a prediction, poll its
    status URL, and fetch images referenced by URL.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        endpoint: str,
        token: Optional[str],
        upstream_timeout: float = 120,
        poll_timeout: float = 10,
        image_fetch_timeout: float = 30,
    ):
        self.http = http
        self.endpoint = endpoint.rstrip("/")
        self.token = token
        self.upstream_timeout = upstream_timeout
        self.poll_timeout = poll_timeout
        self.image_fetch_timeout = image_fetch_timeout

    def _auth_headers(self) -> dict:
        if not self.token:
            raise ConfigurationError()
        return {"Authorization": f"Bearer {self.token}"}

    async def create_prediction(self, prompt: str) -> httpx.Response:
        """
        POST {"input": {"prompt": ...}} to the endpoint.
        Returns the raw 2xx response; its body may be image bytes or JSON.
        """
        headers = self._auth_headers()
        headers["Content-Type"] = "application/json"
        logger.info("[Upstream] POST %s (token present: %s)", self.endpoint, bool(self.token))

        try:
            r = await self.http.post(
                self.endpoint,
                json={"input": {"prompt": prompt}},
                headers=headers,
                timeout=self.upstream_timeout,
            )
        except httpx.HTTPError as e:
            logger.error("[Upstream] POST failed: %s", e)
            raise TransportError(str(e) or None) from e

        logger.info(
            "[Upstream] status=%s content-type=%s length=%d",
            r.status_code,
            r.headers.get("content-type", ""),
            len(r.content),
        )
        if not r.is_success:
            message = error_message_from(r, "Image generation failed")
            logger.error("[Upstream] error %s: %s", r.status_code, preview(message, 300))
            raise UpstreamReportedError(message, status_code=upstream_status(r.status_code))
        return r

    async def get_prediction(self, status_url: str) -> Any:
        """
        GET the prediction status URL and return the parsed JSON body.
        """
        try:
            r = await self.http.get(
                status_url,
                headers=self._auth_headers(),
                timeout=self.poll_timeout,
            )
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Status poll returned {e.response.status_code}",
                status_code=upstream_status(e.response.status_code),
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(str(e) or None) from e

        try:
            return r.json()
        except ValueError as e:
            raise MalformedResponse("Prediction status response is not JSON") from e

    async def fetch_image(self, url: str) -> bytes:
        """
        Download an image referenced by URL in the upstream output.
        """
        logger.info("[Upstream] Fetching image from URL: %s", url)
        try:
            r = await self.http.get(url, timeout=self.image_fetch_timeout)
        except httpx.HTTPError as e:
            raise TransportError(str(e) or None) from e

        if not r.is_success:
            message = error_message_from(r, f"Image download failed with status {r.status_code}")
            raise TransportError(message, status_code=upstream_status(r.status_code))
        return r.content
