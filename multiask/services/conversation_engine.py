"""Follow-up chat about a single completed answer."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

from ..logging import log_call
from .backend_client import BackendError

if TYPE_CHECKING:  # pragma: no cover - import cycle guard for type checkers
    from .backend_client import BackendClient, ChatReply


logger = logging.getLogger(__name__)


REPLY_FAILED_MESSAGE = "Failed to get response. Please try again."
CONNECTION_FAILED_MESSAGE = "Error connecting to server."

SEED_TEMPLATE = (
    "Hi! I can answer follow-up questions about:\n\n"
    "**Q:** {question}\n"
    "**A:** {answer}\n\n"
    "What would you like to know more about?"
)


class ConversationState(Enum):
    """Lifecycle of a chat session."""

    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"
    CLOSED = "closed"


@dataclass(frozen=True)
class ChatMessage:
    """One entry of the chat transcript."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: float

    def to_history_item(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class PendingReply:
    """Handle for a request that has been issued but not yet resolved."""

    request_id: int
    original_question: str
    original_answer: str
    history: tuple[dict[str, str], ...]
    user_message: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "originalQuestion": self.original_question,
            "originalAnswer": self.original_answer,
            "history": [dict(item) for item in self.history],
            "userMessage": self.user_message,
        }


class ConversationEngine:
    """Hold the transcript of one chat session and gate its requests.

    Only one request may be in flight at a time: :meth:`begin_send` is a
    no-op while a reply is awaited. The user message is appended before the
    request is issued; a failed request records :attr:`error` and leaves the
    transcript otherwise untouched. Replies arriving after :meth:`close`, or
    for a request the engine no longer waits on, are ignored.
    """

    def __init__(
        self,
        question: str,
        answer: str,
        *,
        client: "BackendClient | None" = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.question = question
        self.answer = answer
        self.client = client
        self._clock = clock
        self._lock = threading.RLock()
        self._request_ids = itertools.count(1)
        self._messages: list[ChatMessage] = [
            ChatMessage(
                role="assistant",
                content=SEED_TEMPLATE.format(question=question, answer=answer),
                timestamp=clock(),
            )
        ]
        self._state = ConversationState.IDLE
        self._pending_id: int | None = None
        self._error: str | None = None
        self._listeners: list[Callable[["ConversationEngine"], None]] = []

    # ------------------------------------------------------------------
    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        with self._lock:
            return tuple(self._messages)

    @property
    def seed_message(self) -> ChatMessage:
        return self._messages[0]

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def is_awaiting_reply(self) -> bool:
        return self._state is ConversationState.AWAITING_REPLY

    @property
    def closed(self) -> bool:
        return self._state is ConversationState.CLOSED

    def history(self) -> list[dict[str, str]]:
        """Transcript as sent upstream: every turn except the seed message."""

        with self._lock:
            return [message.to_history_item() for message in self._messages[1:]]

    def add_listener(
        self, listener: Callable[["ConversationEngine"], None]
    ) -> Callable[[], None]:
        """Subscribe to transcript/state changes and return an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # State transitions
    def begin_send(self, text: str) -> PendingReply | None:
        """Append ``text`` as a user turn and return the request to issue.

        Returns ``None`` without changing anything when ``text`` is blank or
        the session is not idle.
        """

        user_message = (text or "").strip()
        with self._lock:
            if not user_message:
                return None
            if self._state is not ConversationState.IDLE:
                logger.debug(
                    "Ignoring send while not idle",
                    extra={"state": self._state.value},
                )
                return None
            history = tuple(message.to_history_item() for message in self._messages[1:])
            self._messages.append(
                ChatMessage(role="user", content=user_message, timestamp=self._clock())
            )
            self._error = None
            self._state = ConversationState.AWAITING_REPLY
            pending = PendingReply(
                request_id=next(self._request_ids),
                original_question=self.question,
                original_answer=self.answer,
                history=history,
                user_message=user_message,
            )
            self._pending_id = pending.request_id
        logger.info(
            "Follow-up question queued",
            extra={
                "request_id": pending.request_id,
                "history_length": len(pending.history),
                "message_preview": user_message[:120],
            },
        )
        self._notify()
        return pending

    def resolve(self, pending: PendingReply, reply: "ChatReply") -> bool:
        """Apply a reply to ``pending``. Returns ``False`` when it was ignored."""

        with self._lock:
            if not self._accepts(pending):
                return False
            if reply.success:
                self._messages.append(
                    ChatMessage(role="assistant", content=reply.reply, timestamp=self._clock())
                )
            else:
                self._error = REPLY_FAILED_MESSAGE
            self._pending_id = None
            self._state = ConversationState.IDLE
        if reply.success:
            logger.info("Follow-up reply received", extra={"request_id": pending.request_id})
        else:
            logger.warning(
                "Follow-up request was not successful",
                extra={"request_id": pending.request_id},
            )
        self._notify()
        return True

    def reject(self, pending: PendingReply, exc: BaseException | None = None) -> bool:
        """Record a transport failure for ``pending``."""

        with self._lock:
            if not self._accepts(pending):
                return False
            self._error = CONNECTION_FAILED_MESSAGE
            self._pending_id = None
            self._state = ConversationState.IDLE
        logger.warning(
            "Follow-up request failed",
            extra={"request_id": pending.request_id, "error": str(exc) if exc else None},
        )
        self._notify()
        return True

    def close(self) -> None:
        with self._lock:
            if self._state is ConversationState.CLOSED:
                return
            self._state = ConversationState.CLOSED
            self._pending_id = None
        logger.debug("Chat session closed")
        self._notify()
        self._listeners.clear()

    def _accepts(self, pending: PendingReply) -> bool:
        if self._state is ConversationState.CLOSED:
            logger.debug(
                "Ignoring reply for closed session",
                extra={"request_id": pending.request_id},
            )
            return False
        if pending.request_id != self._pending_id:
            logger.debug(
                "Ignoring stale reply",
                extra={"request_id": pending.request_id, "awaiting": self._pending_id},
            )
            return False
        return True

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:  # pragma: no cover - listener failures stay local
                logger.exception("Chat listener failed")

    # ------------------------------------------------------------------
    # Request dispatch
    def _require_client(self) -> None:
        if self.client is None:
            raise RuntimeError("ConversationEngine has no client configured")

    def _dispatch(self, pending: PendingReply) -> bool:
        try:
            reply = self.client.chat(
                pending.original_question,
                pending.original_answer,
                list(pending.history),
                pending.user_message,
            )
        except BackendError as exc:
            self.reject(pending, exc)
            return False
        except Exception as exc:
            logger.exception("Follow-up request failed unexpectedly")
            self.reject(pending, exc)
            return False
        applied = self.resolve(pending, reply)
        return applied and bool(reply.success)

    @log_call(logger=logger, include_args=False, include_result=True)
    def send(self, text: str) -> bool:
        """Send ``text`` and wait for the reply.

        Returns ``True`` when an assistant turn was appended.
        """

        self._require_client()
        pending = self.begin_send(text)
        if pending is None:
            return False
        return self._dispatch(pending)

    def send_in_background(
        self,
        text: str,
        callback: Callable[[bool], None] | None = None,
    ) -> threading.Thread | None:
        """Issue the request on a worker thread.

        Returns the started thread, or ``None`` when the send was rejected by
        the idle gate.
        """

        self._require_client()
        pending = self.begin_send(text)
        if pending is None:
            return None

        def worker() -> None:
            succeeded = self._dispatch(pending)
            if callback is not None:
                callback(succeeded)

        thread = threading.Thread(
            target=worker, name=f"chat-request-{pending.request_id}", daemon=True
        )
        thread.start()
        return thread


__all__ = [
    "CONNECTION_FAILED_MESSAGE",
    "ChatMessage",
    "ConversationEngine",
    "ConversationState",
    "PendingReply",
    "REPLY_FAILED_MESSAGE",
    "SEED_TEMPLATE",
]
