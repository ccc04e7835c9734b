"""Console entry point: stream answers for questions read from a file or stdin."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TextIO

from PyQt6.QtCore import QCoreApplication

from . import __version__
from .config import ConfigManager, load_client_settings, save_backend_url
from .logging import install_exception_hook, setup_logging
from .questions import EMPTY_SUBMISSION_MESSAGE, clamp_input, parse_questions
from .services.answer_stream import AnswerStreamService
from .services.backend_client import BackendClient
from .services.conversation_engine import ConversationEngine
from .services.progress_service import ProgressService, ProgressUpdate
from .services.summary_service import SummaryService
from .stream import AnswerSlot, StreamSnapshot


class _AnswerPrinter:
    """Write finalised answers to ``out`` in index order as they complete."""

    def __init__(self, out: TextIO) -> None:
        self.out = out
        self._next_index = 0

    def __call__(self, snapshot: StreamSnapshot) -> None:
        answers = snapshot.answers
        while self._next_index in answers and not answers[self._next_index].is_streaming:
            self._print_slot(answers[self._next_index])
            self._next_index += 1
        if not snapshot.loading:
            # Stream ended with gaps: flush whatever was finalised after them.
            for index in sorted(answers):
                if index >= self._next_index and not answers[index].is_streaming:
                    self._print_slot(answers[index])
            self._next_index = max(self._next_index, answers.current_index() + 1)

    def _print_slot(self, slot: AnswerSlot) -> None:
        number = slot.index + 1
        self.out.write(f"Q{number}: {slot.question}\n")
        marker = " [error]" if slot.is_error else ""
        self.out.write(f"A{number}{marker}: {slot.answer}\n\n")
        self.out.flush()


def _report_progress(update: ProgressUpdate) -> None:
    if update.percent is not None:
        print(f"\r{round(update.percent):3d}% Complete", end="", file=sys.stderr, flush=True)
    if update.percent == 100.0:
        print(file=sys.stderr)


def _run_chat(engine: ConversationEngine, stdin: TextIO) -> None:
    print(engine.seed_message.content.replace("**", ""))
    print("(empty line to close)")
    for raw in stdin:
        text = raw.strip()
        if not text:
            break
        if engine.send(text):
            print(f"assistant: {engine.messages[-1].content}")
        elif engine.error:
            print(f"! {engine.error}", file=sys.stderr)
    engine.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multiask",
        description="Ask several questions at once and stream the answers.",
    )
    parser.add_argument(
        "file",
        nargs="?",
        type=argparse.FileType("r", encoding="utf-8"),
        default=None,
        help="file with one question per line (default: stdin)",
    )
    parser.add_argument("--backend-url", help="override the configured backend URL")
    parser.add_argument(
        "--save-backend-url",
        action="store_true",
        help="store --backend-url as the default for later runs",
    )
    parser.add_argument(
        "--summarize",
        action="store_true",
        help="print a short summary of every successful answer",
    )
    parser.add_argument(
        "--chat",
        type=int,
        metavar="N",
        help="open a follow-up chat about answer N (1-based) when streaming ends",
    )
    parser.add_argument("--verbose", action="store_true", help="log to stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logger = setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO, console=args.verbose
    )
    install_exception_hook(logger)

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName("MultiAsk")

    config = ConfigManager()
    if args.save_backend_url:
        if not args.backend_url:
            print("--save-backend-url requires --backend-url", file=sys.stderr)
            return 2
        stored = save_backend_url(config, args.backend_url)
        logger.info("Default backend saved", extra={"base_url": stored})
    settings = load_client_settings(config)
    client = BackendClient.from_settings(settings)
    if args.backend_url:
        client.configure(base_url=args.backend_url)
    logger.info("Backend configured", extra={"base_url": client.base_url})

    source = args.file or sys.stdin
    text = clamp_input(source.read())
    if not parse_questions(text):
        print(EMPTY_SUBMISSION_MESSAGE, file=sys.stderr)
        return 2

    progress_service = ProgressService()
    progress_service.subscribe(_report_progress)
    service = AnswerStreamService(client, progress_service=progress_service)
    service.answers_changed.connect(_AnswerPrinter(sys.stdout))
    final = service.submit(text)

    if final.error:
        print(f"Error: {final.error}", file=sys.stderr)

    if args.summarize:
        summaries = SummaryService(client)
        for slot in final.answers.values():
            summary = summaries.summarize(slot)
            if summary:
                print(f"Short answer {slot.index + 1}: {summary}")

    if args.chat is not None:
        slot = final.answers.get(args.chat - 1)
        if slot is None or not slot.ready:
            print(f"Answer {args.chat} is not available for chat", file=sys.stderr)
            return 1
        # stdin may already be consumed by the question list.
        if args.file is not None:
            chat_input = sys.stdin
        else:
            try:
                chat_input = open("/dev/tty", encoding="utf-8")
            except OSError as exc:
                logger.warning("No terminal available for chat", extra={"error": str(exc)})
                print("Chat needs a terminal when questions are piped in", file=sys.stderr)
                return 1
        try:
            _run_chat(ConversationEngine(slot.question, slot.answer, client=client), chat_input)
        finally:
            if chat_input is not sys.stdin:
                chat_input.close()

    return 1 if final.error else 0


if __name__ == "__main__":
    sys.exit(main())
