"""
Suggestion generator: example questions for a freshly indexed store.

Suggestions are cosmetic. Any remote failure or unusable answer degrades to
an empty list; the failure is logged, never raised.
"""

import logging
import re

from docchat.core.cancellation import CancellationToken
from docchat.core.errors import DocChatError, OperationCancelledError
from docchat.services.query import QueryService

logger = logging.getLogger(__name__)

SUGGESTION_PROMPT = """\
You are given one or more documents in a File Search store. \
Write {count} short, specific questions a user could ask that are \
answered by these documents.

Rules:
1. Write one question per line.
2. Do not number the questions or add any other text.
3. Keep each question under 15 words and end it with a question mark.
"""

_LIST_MARKER = re.compile(r"^\s*(?:[-*•]+|\(?\d+[.)\]:]|Q\d+[.:])\s*", re.IGNORECASE)
MAX_QUESTION_LENGTH = 200


class SuggestionGenerator:
    """Asks the model to propose example questions for a store."""

    def __init__(self, query_service: QueryService, count: int = 4) -> None:
        self._query = query_service
        self._count = count

    async def generate_example_questions(
        self,
        store_name: str,
        cancel: CancellationToken | None = None,
    ) -> list[str]:
        """
        Return up to `count` example questions, or [] on any failure.

        Cancellation is not treated as a failure and propagates.
        """
        prompt = SUGGESTION_PROMPT.format(count=self._count)
        try:
            result = await self._query.query([store_name], prompt, cancel)
        except OperationCancelledError:
            raise
        except DocChatError as exc:
            logger.warning("Example question generation failed: %s", exc)
            return []

        questions = parse_questions(result.answer)[: self._count]
        if not questions:
            logger.warning("No example questions could be parsed from the answer.")
        return questions


def parse_questions(answer: str) -> list[str]:
    """
    Split a newline-delimited answer into question strings.

    Bullets, numbering and surrounding quotes are stripped. Lines that are
    blank, overly long or not questions are dropped, as are duplicates.
    """
    questions: list[str] = []
    for raw_line in (answer or "").splitlines():
        line = _LIST_MARKER.sub("", raw_line).strip()
        line = line.strip("\"'`*").strip()
        if not line or not line.endswith("?"):
            continue
        if len(line) > MAX_QUESTION_LENGTH or line in questions:
            continue
        questions.append(line)
    return questions
