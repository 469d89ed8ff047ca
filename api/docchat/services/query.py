"""
Query client.

Sends a question bound to one or more File Search stores and unpacks the
answer text and its grounding fragments from the response.
"""

import logging
from collections.abc import Sequence
from typing import Any

from docchat.core.cancellation import CancellationToken
from docchat.core.errors import QueryError, RemoteServiceError
from docchat.core.telemetry import get_tracer
from docchat.models.chat import GroundingFragment, QueryResult
from docchat.services.gemini_client import GeminiService

logger = logging.getLogger(__name__)


class QueryService:
    """Answers questions against File Search stores."""

    def __init__(self, gemini: GeminiService) -> None:
        self._gemini = gemini
        self._tracer = get_tracer()

    async def query(
        self,
        store_names: Sequence[str],
        question: str,
        cancel: CancellationToken | None = None,
    ) -> QueryResult:
        """
        Ask a question against the given stores.

        Args:
            store_names: Server-side names of the stores to search.
            question: Natural-language question.
            cancel: Checked before the call; cancels it if fired mid-flight.

        Returns:
            QueryResult with the answer and grounding fragments in the order
            the remote service returned them.

        Raises:
            ValueError: If the question is blank or no store is given.
            QueryError: If the remote call fails.
            CredentialError: If the API key is rejected.
            OperationCancelledError: If `cancel` fires.
        """
        if not question or not question.strip():
            raise ValueError("Question must not be empty")
        if not store_names:
            raise ValueError("At least one store is required")

        cancel = cancel or CancellationToken()
        with self._tracer.start_as_current_span("query.ask") as span:
            span.set_attribute("query.length", len(question))
            try:
                response = await cancel.guard(
                    self._gemini.generate_with_file_search(store_names, question)
                )
            except RemoteServiceError as exc:
                raise QueryError(f"Could not answer the question: {exc}") from exc

            result = QueryResult(
                answer=extract_answer(response),
                grounding=tuple(extract_grounding(response)),
            )
            span.set_attribute("query.grounding_count", len(result.grounding))
            span.set_attribute("query.citation_count", len(result.citations))
            logger.info(
                "Answered question with %d grounding fragments (%d with text)",
                len(result.grounding),
                len(result.citations),
            )
            return result


def extract_answer(response: Any) -> str:
    """Return the generated text, or an empty string if there is none."""
    return getattr(response, "text", None) or ""


def extract_grounding(response: Any) -> list[GroundingFragment]:
    """
    Unpack grounding chunks from the first candidate.

    Chunks without retrieved context or text are kept with `text=None` so
    positions match the remote list; they are simply not citable.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    fragments = []
    for index, chunk in enumerate(chunks):
        context = getattr(chunk, "retrieved_context", None)
        fragments.append(
            GroundingFragment(
                index=index,
                text=getattr(context, "text", None),
                title=getattr(context, "title", None),
                uri=getattr(context, "uri", None),
            )
        )
    return fragments
