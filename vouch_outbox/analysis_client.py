"""Minimal analyzer API client for submitting captured text."""
import time
from dataclasses import dataclass
from typing import Optional, Tuple
import requests

from vouch_outbox import settings
from vouch_outbox.logging_conf import logger
from vouch_outbox.queue.models import AnalysisPayload


class AnalysisClientError(Exception):
    """Base class for delivery failures; every subclass is retryable."""


class TransportError(AnalysisClientError):
    """Connection failure or timeout before a response arrived."""


class ServerError(AnalysisClientError):
    """The analyzer answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Server {status_code}: {body[:200]}")
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class ResponseInfo:
    status_code: int
    request_id: Optional[str]
    elapsed_ms: int


@dataclass(frozen=True)
class AnalysisResult:
    """Parsed analyzer verdict. None means the text looked correct."""

    replacement_chunk: Optional[str]


class AnalysisClient:
    """Posts payloads to the analyzer's /analyze endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.ANALYZER_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.ANALYZER_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def close(self) -> None:
        self.session.close()

    def health_check(self) -> bool:
        """GET /healthz; True only on HTTP 200. Never raises."""
        try:
            response = self.session.get(f"{self.base_url}/healthz", timeout=self.timeout)
            return response.status_code == 200
        except Exception as e:
            logger.debug(f"Health check failed: {e}")
            return False

    def submit(self, payload: AnalysisPayload, request_id: Optional[str] = None) -> ResponseInfo:
        """POST the payload; raises TransportError or ServerError."""
        _, info = self._post(payload, request_id)
        return info

    def submit_for_result(
        self, payload: AnalysisPayload, request_id: Optional[str] = None
    ) -> Tuple[Optional[AnalysisResult], ResponseInfo]:
        """
        POST the payload and decode the verdict.

        Args:
            payload: Captured text and context
            request_id: Correlation id sent as X-Request-Id so the server can dedupe retries

        Returns:
            (result, info) where result is None when the 2xx body carries no
            `replacementChunk` field (free-form text, `{}`, duplicate acks)

        Raises:
            TransportError, ServerError
        """
        response, info = self._post(payload, request_id)
        return self._parse_result(response), info

    def _post(self, payload: AnalysisPayload, request_id: Optional[str]) -> Tuple[requests.Response, ResponseInfo]:
        headers = {"Content-Type": "application/json; charset=utf-8"}
        if request_id:
            headers["X-Request-Id"] = request_id

        started = time.monotonic()
        try:
            response = self.session.post(
                f"{self.base_url}/analyze",
                data=payload.to_json().encode("utf-8"),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        info = ResponseInfo(
            status_code=response.status_code,
            request_id=request_id,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        if not 200 <= response.status_code < 300:
            raise ServerError(response.status_code, response.text or "")
        return response, info

    def _parse_result(self, response: requests.Response) -> Optional[AnalysisResult]:
        try:
            body = response.json()
        except ValueError:
            return None
        if not isinstance(body, dict) or "replacementChunk" not in body:
            return None
        chunk = body["replacementChunk"]
        if chunk is not None and not isinstance(chunk, str):
            return None
        return AnalysisResult(replacement_chunk=chunk)
