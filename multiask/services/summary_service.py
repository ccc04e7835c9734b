"""Short-answer summaries for completed answers."""

from __future__ import annotations

import logging

from ..logging import log_call
from ..stream import AnswerSlot
from .backend_client import BackendClient, BackendError


logger = logging.getLogger(__name__)


class SummaryService:
    """Cache one summary per answer index and track which ones are shown.

    Summaries are requested at most once per index. Asking again for an
    index that already has a summary toggles its visibility instead. A
    failed request leaves the cache exactly as it was.
    """

    def __init__(self, client: BackendClient) -> None:
        self.client = client
        self._summaries: dict[int, str] = {}
        self._shown: dict[int, bool] = {}
        self._summarizing_index: int | None = None

    @property
    def summarizing_index(self) -> int | None:
        return self._summarizing_index

    def summary(self, index: int) -> str | None:
        return self._summaries.get(index)

    def is_shown(self, index: int) -> bool:
        return bool(self._shown.get(index)) and index in self._summaries

    def set_shown(self, index: int, shown: bool) -> None:
        if index in self._summaries:
            self._shown[index] = bool(shown)

    @staticmethod
    def can_summarize(slot: AnswerSlot | None) -> bool:
        return slot is not None and slot.ready

    @log_call(logger=logger, include_args=False, include_result=True)
    def summarize(self, slot: AnswerSlot | None) -> str | None:
        """Return the summary for ``slot``, requesting it on first use.

        Returns ``None`` for absent, failed or still streaming answers, and
        when the request fails.
        """

        if slot is None or not self.can_summarize(slot):
            return None
        index = slot.index
        if index in self._summaries:
            self._shown[index] = not self._shown.get(index, False)
            return self._summaries[index]

        self._summarizing_index = index
        try:
            reply = self.client.summarize(slot.question, slot.answer)
        except BackendError as exc:
            logger.warning(
                "Summary request failed",
                extra={"index": index, "error": str(exc)},
            )
            return None
        finally:
            self._summarizing_index = None

        if not reply.success:
            logger.info("Backend declined to summarize answer", extra={"index": index})
            return None
        self._summaries[index] = reply.summary
        self._shown[index] = True
        return reply.summary

    def clear(self) -> None:
        self._summaries.clear()
        self._shown.clear()
        self._summarizing_index = None


__all__ = ["SummaryService"]
