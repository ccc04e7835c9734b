"""Client helpers for the multi-question answering HTTP backend."""

from __future__ import annotations

import http.client
import json
import logging
import socket
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib import error, request

from ..config import DEFAULT_BACKEND_URL, ClientSettings
from ..logging import log_call


logger = logging.getLogger(__name__)


ASK_QUESTIONS_PATH = "/api/ask-questions"
CHAT_PATH = "/api/chat"
SUMMARIZE_PATH = "/api/summarize-answer"
DEFAULT_CHUNK_SIZE = 4096


class BackendError(RuntimeError):
    """Base exception for backend client failures."""


class BackendConnectionError(BackendError):
    """Raised when the backend cannot be reached."""


class BackendResponseError(BackendError):
    """Raised when the backend returns an invalid or unsuccessful response."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class ChatReply:
    """Reply to a follow-up chat request."""

    success: bool
    reply: str
    raw_response: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class SummaryReply:
    """Reply to a summarize-answer request."""

    success: bool
    summary: str
    raw_response: dict[str, Any] = field(default_factory=dict, repr=False)


class BackendClient:
    """HTTP client for the question streaming, chat, and summary endpoints."""

    @log_call(logger=logger)
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BACKEND_URL,
        timeout: float = 60.0,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._base_url = base_url.rstrip("/") or DEFAULT_BACKEND_URL
        self.timeout = timeout
        self.max_retries = max(max_retries, 0)
        self.retry_backoff = retry_backoff
        self.chunk_size = max(chunk_size, 1)

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> "BackendClient":
        return cls(
            base_url=settings.backend_url,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            retry_backoff=settings.retry_backoff,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @log_call(logger=logger)
    def configure(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Update connection settings without recreating the client."""

        if base_url is not None:
            normalized = base_url.rstrip("/")
            self._base_url = normalized or DEFAULT_BACKEND_URL
        if timeout is not None:
            self.timeout = timeout

    # ------------------------------------------------------------------
    # Streaming submission
    def stream_questions(self, questions: Sequence[str]) -> Iterator[bytes]:
        """Submit ``questions`` and yield the raw response body in chunks.

        The request is sent lazily, on the first ``next()``. Connection
        failures raise :class:`BackendConnectionError`; a non-success status
        raises :class:`BackendResponseError`. The stream is never retried:
        part of it may already have been consumed.
        """

        payload = {"questions": [str(question) for question in questions]}
        url = f"{self._base_url}{ASK_QUESTIONS_PATH}"
        request_obj = self._build_request("POST", url, payload, accept="text/event-stream")
        logger.info(
            "Submitting questions",
            extra={"question_count": len(payload["questions"]), "base_url": self._base_url},
        )
        try:
            response = request.urlopen(request_obj, timeout=self.timeout)
        except error.HTTPError as exc:
            body = exc.read() if hasattr(exc, "read") else b""
            raise BackendResponseError(
                self._build_http_error_message(exc.code, body), status=exc.code
            ) from exc
        except error.URLError as exc:
            raise self._connection_error(exc) from exc
        except (TimeoutError, socket.timeout) as exc:
            raise BackendConnectionError("Backend request timed out") from exc
        except (http.client.HTTPException, OSError) as exc:
            raise BackendConnectionError(f"Backend connection failed: {exc!r}") from exc

        total = 0
        with response:
            status = response.getcode()
            if status is None or status >= 400:
                raise BackendResponseError(f"HTTP {status}", status=status)
            while True:
                try:
                    chunk = response.read1(self.chunk_size)
                except (TimeoutError, socket.timeout) as exc:
                    raise BackendConnectionError("Backend stream timed out") from exc
                except (http.client.HTTPException, OSError) as exc:
                    raise BackendConnectionError(f"Backend stream interrupted: {exc!r}") from exc
                if not chunk:
                    break
                total += len(chunk)
                yield chunk
        logger.debug("Question stream closed", extra={"bytes_received": total})

    # ------------------------------------------------------------------
    # One-shot JSON endpoints
    @log_call(logger=logger, include_args=False, include_result=True)
    def chat(
        self,
        original_question: str,
        original_answer: str,
        history: Sequence[dict[str, str]],
        user_message: str,
    ) -> ChatReply:
        """Ask a follow-up question about one answer."""

        payload = {
            "originalQuestion": original_question,
            "originalAnswer": original_answer,
            "history": [
                {"role": str(item.get("role", "")), "content": str(item.get("content", ""))}
                for item in history
            ],
            "userMessage": user_message,
        }
        logger.info(
            "Dispatching follow-up chat request",
            extra={"history_length": len(payload["history"]), "base_url": self._base_url},
        )
        data = self._request_json("POST", CHAT_PATH, payload)
        reply = data.get("reply")
        return ChatReply(
            success=bool(data.get("success")) and isinstance(reply, str),
            reply=reply if isinstance(reply, str) else "",
            raw_response=data,
        )

    @log_call(logger=logger, include_args=False, include_result=True)
    def summarize(self, question: str, answer: str) -> SummaryReply:
        """Request a short version of ``answer``."""

        data = self._request_json(
            "POST", SUMMARIZE_PATH, {"question": question, "answer": answer}
        )
        summary = data.get("summary")
        return SummaryReply(
            success=bool(data.get("success")) and isinstance(summary, str),
            summary=summary if isinstance(summary, str) else "",
            raw_response=data,
        )

    # ------------------------------------------------------------------
    @staticmethod
    def _build_request(
        method: str,
        url: str,
        payload: dict[str, Any] | None,
        *,
        accept: str = "application/json",
    ) -> request.Request:
        data: bytes | None = None
        headers = {"Accept": accept}
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        return request.Request(url, data=data, headers=headers, method=method)

    @staticmethod
    def _connection_error(exc: error.URLError) -> BackendConnectionError:
        if isinstance(exc.reason, (TimeoutError, socket.timeout)):
            return BackendConnectionError("Backend request timed out")
        return BackendConnectionError(str(exc.reason))

    def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> bytes:
        url = f"{self._base_url}{path}"
        request_obj = self._build_request(method, url, payload)
        last_error: BackendError | None = None
        for attempt in range(self.max_retries + 1):
            try:
                logger.debug(
                    "Backend request attempt",
                    extra={"method": method, "url": url, "attempt": attempt + 1},
                )
                with request.urlopen(request_obj, timeout=self.timeout) as response:
                    status = response.getcode()
                    body = response.read()
                if status >= 400:
                    raise BackendResponseError(
                        self._build_http_error_message(status, body), status=status
                    )
                return body
            except error.HTTPError as exc:
                body = exc.read() if hasattr(exc, "read") else b""
                last_error = BackendResponseError(
                    self._build_http_error_message(exc.code, body), status=exc.code
                )
                if not self._should_retry(exc.code):
                    break
            except error.URLError as exc:
                last_error = self._connection_error(exc)
            except (TimeoutError, socket.timeout):
                last_error = BackendConnectionError("Backend request timed out")
            except (http.client.HTTPException, OSError) as exc:
                # Dropped or half-read responses surface from http.client directly.
                last_error = BackendConnectionError(f"Backend connection failed: {exc!r}")
            if attempt < self.max_retries:
                logger.warning(
                    "Backend request failed, retrying",
                    extra={
                        "method": method,
                        "url": url,
                        "attempt": attempt + 1,
                        "error": str(last_error) if last_error else None,
                    },
                )
                time.sleep(self.retry_backoff * (2**attempt))
        if last_error is not None:
            raise last_error
        raise BackendError("Unexpected backend request failure")

    def _request_json(
        self, method: str, path: str, payload: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        body = self._request(method, path, payload)
        if not body:
            raise BackendResponseError("Empty response from backend")
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise BackendResponseError("Invalid JSON from backend") from exc
        if not isinstance(data, dict):
            raise BackendResponseError("Backend response is not a JSON object")
        return data

    @staticmethod
    def _should_retry(status: int | None) -> bool:
        if status is None:
            return True
        return status in {408, 409, 429, 500, 502, 503, 504}

    @staticmethod
    def _build_http_error_message(status: int | None, body: bytes | str | None) -> str:
        summary = BackendClient._summarize_error_body(body)
        if status is not None:
            if summary:
                return f"HTTP {status}: {summary}"
            return f"HTTP {status}"
        return summary or "Backend request failed"

    @staticmethod
    def _summarize_error_body(body: bytes | str | None) -> str:
        if body is None:
            return ""
        if isinstance(body, bytes):
            text = body.decode("utf-8", errors="replace")
        else:
            text = str(body)
        text = text.strip()
        if not text:
            return ""
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return " ".join(text.split())[:300]
        if isinstance(data, dict):
            for key in ("error", "message", "detail"):
                value = data.get(key)
                if isinstance(value, dict):
                    value = value.get("message") or value.get("detail")
                if isinstance(value, str) and value.strip():
                    return " ".join(value.split())
        return " ".join(text.split())[:300]


__all__ = [
    "BackendClient",
    "BackendConnectionError",
    "BackendError",
    "BackendResponseError",
    "ChatReply",
    "SummaryReply",
]
