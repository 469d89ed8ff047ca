"""
Unit tests for the upload orchestrator.

Covers sequential ordering, progress reporting and the batch failure policy.
"""

import pytest

from docchat.core.errors import (
    CredentialError,
    OperationTimeoutError,
    RemoteServiceError,
    UploadError,
)
from docchat.models.documents import Store, UploadProgress
from docchat.services.polling import PollPolicy
from docchat.services.uploads import UploadOrchestrator
from fakes import FakeGeminiService, make_document

STORE = Store(name="fileSearchStores/store-1", display_name="test")


def make_orchestrator(gemini, continue_on_error=False):
    return UploadOrchestrator(
        gemini, PollPolicy(interval=0, max_attempts=20), continue_on_error=continue_on_error
    )


@pytest.mark.asyncio
async def test_uploads_sequentially_in_input_order():
    gemini = FakeGeminiService(polls_until_done=2, poll_delay=0.001)
    orchestrator = make_orchestrator(gemini)
    documents = [make_document(name) for name in ("a.pdf", "b.txt", "c.md")]

    result = await orchestrator.upload_all(STORE, documents)

    assert result.ok
    assert [d.file_name for d in result.uploaded] == ["a.pdf", "b.txt", "c.md"]
    assert gemini.calls == [
        ("upload", "a.pdf"), ("poll", "a.pdf"), ("poll", "a.pdf"),
        ("upload", "b.txt"), ("poll", "b.txt"), ("poll", "b.txt"),
        ("upload", "c.md"), ("poll", "c.md"), ("poll", "c.md"),
    ]
    assert gemini.max_active_polls == 1


@pytest.mark.asyncio
async def test_reports_progress_as_each_file_starts():
    gemini = FakeGeminiService()
    orchestrator = make_orchestrator(gemini)
    seen: list[UploadProgress] = []

    await orchestrator.upload_all(
        STORE, [make_document("a.pdf"), make_document("b.txt")], seen.append
    )

    assert seen == [UploadProgress(1, 2, "a.pdf"), UploadProgress(2, 2, "b.txt")]


@pytest.mark.asyncio
async def test_error_payload_raises_upload_error():
    gemini = FakeGeminiService(failing_files={"a.pdf": "unsupported encoding"})
    orchestrator = make_orchestrator(gemini)

    with pytest.raises(UploadError) as excinfo:
        await orchestrator.upload(STORE, make_document("a.pdf"))

    assert excinfo.value.file_name == "a.pdf"
    assert excinfo.value.reason == "unsupported encoding"


@pytest.mark.asyncio
async def test_submission_failure_is_scoped_to_the_file():
    gemini = FakeGeminiService(
        submit_errors={"a.pdf": RemoteServiceError("quota exceeded", status_code=429)}
    )
    orchestrator = make_orchestrator(gemini)

    with pytest.raises(UploadError, match="quota exceeded"):
        await orchestrator.upload(STORE, make_document("a.pdf"))


@pytest.mark.asyncio
async def test_credential_error_is_not_wrapped():
    gemini = FakeGeminiService(submit_errors={"a.pdf": CredentialError("bad key")})
    orchestrator = make_orchestrator(gemini)

    with pytest.raises(CredentialError):
        await orchestrator.upload_all(STORE, [make_document("a.pdf")])


@pytest.mark.asyncio
async def test_abort_policy_stops_at_first_failure():
    gemini = FakeGeminiService(failing_files={"b.txt": "corrupt"})
    orchestrator = make_orchestrator(gemini, continue_on_error=False)
    documents = [make_document(n) for n in ("a.pdf", "b.txt", "c.md")]

    result = await orchestrator.upload_all(STORE, documents)

    assert not result.ok
    assert [d.file_name for d in result.uploaded] == ["a.pdf"]
    assert [f.file_name for f in result.failures] == ["b.txt"]
    assert ("upload", "c.md") not in gemini.calls


@pytest.mark.asyncio
async def test_continue_policy_uploads_remaining_files():
    gemini = FakeGeminiService(failing_files={"b.txt": "corrupt"})
    orchestrator = make_orchestrator(gemini, continue_on_error=True)
    documents = [make_document(n) for n in ("a.pdf", "b.txt", "c.md")]

    result = await orchestrator.upload_all(STORE, documents)

    assert [d.file_name for d in result.uploaded] == ["a.pdf", "c.md"]
    assert result.failures[0].reason == "corrupt"


@pytest.mark.asyncio
async def test_timeout_is_a_failure_of_that_file():
    gemini = FakeGeminiService(stuck_files={"b.txt"})
    orchestrator = UploadOrchestrator(
        gemini, PollPolicy(interval=0, max_attempts=3), continue_on_error=True
    )
    documents = [make_document(n) for n in ("a.pdf", "b.txt", "c.md")]

    result = await orchestrator.upload_all(STORE, documents)

    assert [d.file_name for d in result.uploaded] == ["a.pdf", "c.md"]
    assert [f.file_name for f in result.failures] == ["b.txt"]
    assert isinstance(result.failures[0].error, OperationTimeoutError)
    assert ("upload", "c.md") in gemini.calls


@pytest.mark.asyncio
async def test_finished_files_are_reported_before_an_escaping_error():
    gemini = FakeGeminiService(submit_errors={"b.txt": CredentialError("revoked")})
    orchestrator = make_orchestrator(gemini)
    finished = []

    with pytest.raises(CredentialError):
        await orchestrator.upload_all(
            STORE,
            [make_document("a.pdf"), make_document("b.txt")],
            on_uploaded=finished.append,
        )

    assert [d.file_name for d in finished] == ["a.pdf"]
