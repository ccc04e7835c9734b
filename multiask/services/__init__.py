"""Backend client and application services for the MultiAsk client."""

from .backend_client import (
    BackendClient,
    BackendConnectionError,
    BackendError,
    BackendResponseError,
    ChatReply,
    SummaryReply,
)
from .conversation_engine import (
    ChatMessage,
    ConversationEngine,
    ConversationState,
    PendingReply,
)
from .summary_service import SummaryService

__all__ = [
    "BackendClient",
    "BackendConnectionError",
    "BackendError",
    "BackendResponseError",
    "ChatMessage",
    "ChatReply",
    "ConversationEngine",
    "ConversationState",
    "PendingReply",
    "SummaryReply",
    "SummaryService",
]

# Qt-backed services require PyQt6. They are imported lazily to avoid import
# errors when the runtime environment lacks Qt libraries.
try:  # pragma: no cover - optional dependency guard
    from .progress_service import ProgressService, ProgressUpdate
    from .answer_stream import AnswerStreamService
except ImportError:  # pragma: no cover
    ProgressService = ProgressUpdate = AnswerStreamService = None  # type: ignore[assignment]
else:  # pragma: no cover - executed when Qt is available
    __all__.extend(["AnswerStreamService", "ProgressService", "ProgressUpdate"])
