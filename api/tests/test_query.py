"""
Unit tests for the query client, suggestion generator and store client.
"""

from types import SimpleNamespace

import pytest

from docchat.core.errors import (
    CredentialError,
    QueryError,
    RemoteServiceError,
)
from docchat.services.gemini_client import translate_error
from docchat.services.query import QueryService, extract_grounding
from docchat.services.stores import StoreService
from docchat.services.suggestions import SuggestionGenerator, parse_questions
from fakes import FakeGeminiService, make_response


class TestQueryService:
    @pytest.mark.asyncio
    async def test_answer_and_grounding_order(self):
        gemini = FakeGeminiService(answer="Answer.", chunks=("first", "second", "third"))
        result = await QueryService(gemini).query(["fileSearchStores/s"], "What is X?")

        assert result.answer == "Answer."
        assert [f.text for f in result.grounding] == ["first", "second", "third"]
        assert [f.index for f in result.grounding] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_fragments_without_text_are_not_citable(self):
        gemini = FakeGeminiService(chunks=("first", None, "   ", "fourth"))
        result = await QueryService(gemini).query(["fileSearchStores/s"], "Q?")

        assert len(result.grounding) == 4
        assert [f.index for f in result.citations] == [0, 3]
        assert [f.text for f in result.citations] == ["first", "fourth"]

    @pytest.mark.asyncio
    async def test_remote_failure_becomes_query_error(self):
        gemini = FakeGeminiService(generate_error=RemoteServiceError("quota", 429))
        with pytest.raises(QueryError, match="quota"):
            await QueryService(gemini).query(["fileSearchStores/s"], "Q?")

    @pytest.mark.asyncio
    async def test_credential_error_propagates(self):
        gemini = FakeGeminiService(generate_error=CredentialError("bad key"))
        with pytest.raises(CredentialError):
            await QueryService(gemini).query(["fileSearchStores/s"], "Q?")

    @pytest.mark.asyncio
    async def test_blank_question_is_rejected(self):
        gemini = FakeGeminiService()
        with pytest.raises(ValueError):
            await QueryService(gemini).query(["fileSearchStores/s"], "   ")
        assert gemini.calls == []


class TestExtractGrounding:
    def test_no_candidates(self):
        assert extract_grounding(SimpleNamespace(text="hi", candidates=None)) == []

    def test_no_grounding_metadata(self):
        response = SimpleNamespace(
            text="hi", candidates=[SimpleNamespace(grounding_metadata=None)]
        )
        assert extract_grounding(response) == []

    def test_missing_context_keeps_position(self):
        fragments = extract_grounding(make_response("hi", (None, "text")))
        assert fragments[0].text is None
        assert fragments[1].index == 1
        assert fragments[1].title == "doc.pdf"


class TestSuggestions:
    @pytest.mark.asyncio
    async def test_parses_generated_questions(self):
        gemini = FakeGeminiService(suggestions="1. What is X?\n2. How does Y work?\n")
        generator = SuggestionGenerator(QueryService(gemini), count=4)

        questions = await generator.generate_example_questions("fileSearchStores/s")

        assert questions == ["What is X?", "How does Y work?"]

    @pytest.mark.asyncio
    async def test_empty_answer_yields_no_suggestions(self):
        gemini = FakeGeminiService(suggestions="")
        generator = SuggestionGenerator(QueryService(gemini))

        assert await generator.generate_example_questions("fileSearchStores/s") == []

    @pytest.mark.asyncio
    async def test_remote_failure_yields_no_suggestions(self):
        gemini = FakeGeminiService(suggestion_error=RemoteServiceError("down", 503))
        generator = SuggestionGenerator(QueryService(gemini))

        assert await generator.generate_example_questions("fileSearchStores/s") == []

    @pytest.mark.asyncio
    async def test_result_is_capped_at_count(self):
        answer = "\n".join(f"Question {i}?" for i in range(10))
        gemini = FakeGeminiService(suggestions=answer)
        generator = SuggestionGenerator(QueryService(gemini), count=3)

        questions = await generator.generate_example_questions("fileSearchStores/s")

        assert questions == ["Question 0?", "Question 1?", "Question 2?"]

    def test_parse_strips_markers_and_drops_noise(self):
        answer = (
            "Here are some questions:\n"
            "- What is the warranty?\n"
            "* \"How do I clean the filter?\"\n"
            "(3) When should I service it?\n"
            "\n"
            "- What is the warranty?\n"
        )
        assert parse_questions(answer) == [
            "What is the warranty?",
            "How do I clean the filter?",
            "When should I service it?",
        ]


class TestStoreService:
    @pytest.mark.asyncio
    async def test_create_and_delete(self):
        gemini = FakeGeminiService()
        stores = StoreService(gemini)

        store = await stores.create_store("chat")
        await stores.delete_store(store.name)

        assert gemini.deleted == [store.name]

    @pytest.mark.asyncio
    async def test_delete_tolerates_missing_store(self):
        stores = StoreService(FakeGeminiService())
        await stores.delete_store("fileSearchStores/gone")

    @pytest.mark.asyncio
    async def test_delete_propagates_other_failures(self):
        gemini = FakeGeminiService(delete_error=RemoteServiceError("boom", 500))
        with pytest.raises(RemoteServiceError):
            await StoreService(gemini).delete_store("fileSearchStores/s")


class TestTranslateError:
    @staticmethod
    def api_error(code, message):
        error = Exception(message)
        error.code = code
        error.message = message
        return error

    def test_unauthorized_is_credential_error(self):
        assert isinstance(translate_error(self.api_error(403, "denied"), "x"), CredentialError)

    def test_invalid_key_message_is_credential_error(self):
        error = self.api_error(400, "API key not valid. Please pass a valid API key.")
        assert isinstance(translate_error(error, "x"), CredentialError)

    def test_not_found_keeps_status(self):
        translated = translate_error(self.api_error(404, "missing"), "Store deletion")
        assert isinstance(translated, RemoteServiceError)
        assert translated.is_not_found
        assert "Store deletion failed" in str(translated)

    def test_transport_error_has_no_status(self):
        translated = translate_error(ConnectionError("reset"), "Generation")
        assert isinstance(translated, RemoteServiceError)
        assert translated.status_code is None
