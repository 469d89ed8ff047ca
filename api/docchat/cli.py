"""
Command-line document chat.

Uploads local files (and optional sample documents) into a fresh File
Search store, prints example questions, answers questions with numbered
citations and deletes the store on exit.

Usage:
    docchat --file ./manual.pdf --question "How do I reset the device?"
    docchat --file notes.md --file faq.txt          # questions from stdin
    docchat --sample lg-washer-manual
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TextIO

from docchat.core.config import Settings, get_settings
from docchat.core.errors import DocChatError
from docchat.core.telemetry import setup_telemetry, shutdown_telemetry
from docchat.models.chat import ChatMessage
from docchat.models.documents import LocalDocument, UploadProgress
from docchat.services.samples import SAMPLE_DOCUMENTS, SampleLibrary
from docchat.services.session import GeminiFactory, SessionController

CITATION_PREVIEW_CHARS = 160


def load_documents(paths: list[str]) -> list[LocalDocument]:
    """Read local files into documents, validating their type."""
    documents = []
    for path in paths:
        file_path = Path(path)
        if not file_path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        documents.append(LocalDocument.from_bytes(file_path.name, file_path.read_bytes()))
    return documents


def format_answer(message: ChatMessage) -> str:
    """Render a model message with its citations listed underneath."""
    lines = [message.text.strip() or "(no answer)"]
    citations = message.citations
    if citations:
        lines.append("")
        lines.append("Sources:")
        for number, fragment in enumerate(citations, start=1):
            preview = " ".join(fragment.text.split())
            if len(preview) > CITATION_PREVIEW_CHARS:
                preview = preview[:CITATION_PREVIEW_CHARS].rstrip() + "..."
            title = f" ({fragment.title})" if fragment.title else ""
            lines.append(f"  [{number}]{title} {preview}")
    return "\n".join(lines)


def print_progress(progress: UploadProgress) -> None:
    print(f"Uploading {progress.current}/{progress.total}: {progress.file_name}", flush=True)


async def run_session(
    settings: Settings,
    documents: list[LocalDocument],
    questions: list[str],
    api_key: str | None = None,
    sample_ids: list[str] | None = None,
    gemini_factory: GeminiFactory | None = None,
    samples: SampleLibrary | None = None,
    stdin: TextIO | None = None,
) -> int:
    """
    Run one headless session.

    Returns:
        Process exit code (0 on success, 1 on a failed question or upload).
    """
    session = SessionController(
        settings, gemini_factory, session_id="cli", progress_listener=print_progress
    )
    exit_code = 0
    try:
        if api_key:
            session.select_key(api_key)

        samples = samples or SampleLibrary(timeout=settings.sample_fetch_timeout_seconds)
        for sample_id in sample_ids or []:
            print(f"Fetching sample '{sample_id}'...", flush=True)
            documents.append(await samples.fetch(sample_id))

        session.add_documents(documents)
        await session.confirm_upload()
        print(f"Ready: {session.document_name}")

        if session.example_questions:
            print("\nTry asking:")
            for suggestion in session.example_questions:
                print(f"  - {suggestion}")

        for question in _iter_questions(questions, stdin or sys.stdin):
            print(f"\n> {question}")
            try:
                answer = await session.ask(question)
            except DocChatError as exc:
                print(f"Error: {exc}", file=sys.stderr)
                exit_code = 1
                continue
            print(format_answer(answer))
    except DocChatError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    finally:
        await session.close()
    return exit_code


def _iter_questions(questions: list[str], stdin: TextIO):
    if questions:
        yield from questions
        return
    if stdin.isatty():
        print("\nAsk a question (empty line to quit).")
    for line in stdin:
        question = line.strip()
        if not question:
            break
        yield question


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Chat with local documents through Gemini File Search"
    )
    parser.add_argument(
        "--file",
        action="append",
        default=[],
        help="Path to a PDF, .txt or .md file (repeatable)",
    )
    parser.add_argument(
        "--sample",
        action="append",
        default=[],
        choices=[sample.id for sample in SAMPLE_DOCUMENTS],
        help="Add a sample document by id (repeatable)",
    )
    parser.add_argument(
        "--question",
        action="append",
        default=[],
        help="Question to ask (repeatable); reads stdin when omitted",
    )
    parser.add_argument(
        "--api-key",
        default=None,
        help="Gemini API key (defaults to GEMINI_API_KEY)",
    )

    args = parser.parse_args(argv)
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(message)s")

    if not args.file and not args.sample:
        parser.error("at least one --file or --sample is required")

    try:
        documents = load_documents(args.file)
    except (FileNotFoundError, DocChatError) as exc:
        parser.error(str(exc))

    setup_telemetry(settings)
    try:
        return asyncio.run(
            run_session(
                settings,
                documents,
                args.question,
                api_key=args.api_key,
                sample_ids=args.sample,
            )
        )
    finally:
        shutdown_telemetry()


if __name__ == "__main__":
    sys.exit(main())
