"""
Unit tests for document validation, chat models and sample fetching.
"""

import httpx
import pytest
from pydantic import ValidationError

from docchat.core.errors import SampleFetchError, UnsupportedDocumentError
from docchat.models.chat import ChatMessage, GroundingFragment, QueryResult
from docchat.models.documents import LocalDocument
from docchat.services.samples import SAMPLE_DOCUMENTS, SampleDocument, SampleLibrary

SAMPLE = SampleDocument(
    id="manual", name="Manual", url="https://example.test/manual.pdf", file_name="manual.pdf"
)


class TestLocalDocument:
    @pytest.mark.parametrize(
        "file_name, mime_type",
        [
            ("report.pdf", "application/pdf"),
            ("NOTES.TXT", "text/plain"),
            ("readme.md", "text/markdown"),
        ],
    )
    def test_accepted_types(self, file_name, mime_type):
        document = LocalDocument.from_bytes(file_name, b"content")
        assert document.mime_type == mime_type
        assert document.size == 7

    def test_directory_components_are_dropped(self):
        document = LocalDocument.from_bytes("../../etc/notes.txt", b"x")
        assert document.file_name == "notes.txt"

    def test_rejects_other_types(self):
        with pytest.raises(UnsupportedDocumentError):
            LocalDocument.from_bytes("slides.pptx", b"content")

    def test_rejects_empty_files(self):
        with pytest.raises(UnsupportedDocumentError):
            LocalDocument.from_bytes("empty.txt", b"")


class TestChatModels:
    def test_user_messages_cannot_be_grounded(self):
        with pytest.raises(ValidationError):
            ChatMessage(
                role="user",
                parts=("hi",),
                grounding=(GroundingFragment(index=0, text="x"),),
            )

    def test_messages_are_immutable(self):
        message = ChatMessage.from_user("hi")
        with pytest.raises(ValidationError):
            message.parts = ("changed",)

    def test_model_message_keeps_all_fragments(self):
        result = QueryResult(
            answer="Answer",
            grounding=(
                GroundingFragment(index=0, text=None),
                GroundingFragment(index=1, text="source"),
            ),
        )
        message = ChatMessage.from_result(result)

        assert message.text == "Answer"
        assert len(message.grounding) == 2
        assert [f.index for f in message.citations] == [1]


class TestSampleLibrary:
    @pytest.mark.asyncio
    async def test_fetch_returns_local_document(self):
        requested = []

        def handler(request):
            requested.append(str(request.url))
            return httpx.Response(200, content=b"%PDF-1.4")

        library = SampleLibrary(samples=(SAMPLE,), transport=httpx.MockTransport(handler))
        document = await library.fetch("manual")

        assert requested == [SAMPLE.url]
        assert document.file_name == "manual.pdf"
        assert document.mime_type == "application/pdf"
        assert document.content == b"%PDF-1.4"

    @pytest.mark.asyncio
    async def test_http_error_raises_fetch_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        library = SampleLibrary(samples=(SAMPLE,), transport=transport)

        with pytest.raises(SampleFetchError, match="Manual"):
            await library.fetch("manual")

    @pytest.mark.asyncio
    async def test_unknown_sample(self):
        with pytest.raises(KeyError):
            await SampleLibrary(samples=(SAMPLE,)).fetch("missing")

    def test_default_catalogue(self):
        ids = [sample.id for sample in SampleLibrary().catalogue()]
        assert ids == [sample.id for sample in SAMPLE_DOCUMENTS]
        assert all(sample.file_name.endswith(".pdf") for sample in SAMPLE_DOCUMENTS)
