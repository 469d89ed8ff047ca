"""
Session router: API key, document selection, upload and reset.

The upload runs in the background; clients poll GET /session for progress.
"""

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status

from docchat.core.security import get_session_id
from docchat.models.documents import LocalDocument
from docchat.models.session import ApiKeyRequest, SampleView, SessionSnapshot
from docchat.services.samples import SampleLibrary
from docchat.services.session import SessionController, SessionRegistry

router = APIRouter(prefix="/session", tags=["session"])


def get_sessions(request: Request) -> SessionRegistry:
    """
    Dependency injection for the session registry.
    Initialized once in main.py and stored in app.state.
    """
    return request.app.state.sessions


def get_samples(request: Request) -> SampleLibrary:
    return request.app.state.samples


def get_session(
    session_id: str = Depends(get_session_id),
    sessions: SessionRegistry = Depends(get_sessions),
) -> SessionController:
    return sessions.get(session_id)


@router.get("", response_model=SessionSnapshot)
async def read_session(
    session: SessionController = Depends(get_session),
) -> SessionSnapshot:
    """Current state, upload progress, transcript and suggestions."""
    return session.snapshot()


@router.post("/key", response_model=SessionSnapshot)
async def select_key(
    request: ApiKeyRequest,
    session: SessionController = Depends(get_session),
) -> SessionSnapshot:
    """Use an API key for this session only. The key is never persisted."""
    session.select_key(request.api_key)
    return session.snapshot()


@router.post("/documents", response_model=SessionSnapshot)
async def add_documents(
    files: list[UploadFile] = File(...),
    session: SessionController = Depends(get_session),
) -> SessionSnapshot:
    """Queue picked or dropped files (PDF, .txt, .md) for upload."""
    documents = []
    for upload in files:
        content = await upload.read()
        documents.append(LocalDocument.from_bytes(upload.filename or "", content))
    session.add_documents(documents)
    return session.snapshot()


@router.delete("/documents/{index}", response_model=SessionSnapshot)
async def remove_document(
    index: int,
    session: SessionController = Depends(get_session),
) -> SessionSnapshot:
    try:
        session.remove_document(index)
    except IndexError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return session.snapshot()


@router.get("/samples", response_model=list[SampleView])
async def list_samples(
    samples: SampleLibrary = Depends(get_samples),
) -> list[SampleView]:
    return [
        SampleView(id=sample.id, name=sample.name, file_name=sample.file_name)
        for sample in samples.catalogue()
    ]


@router.post("/samples/{sample_id}", response_model=SessionSnapshot)
async def add_sample(
    sample_id: str,
    session: SessionController = Depends(get_session),
    samples: SampleLibrary = Depends(get_samples),
) -> SessionSnapshot:
    """Download a sample document and queue it like a local file."""
    try:
        samples.get(sample_id)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0])
    session.add_documents([await samples.fetch(sample_id)])
    return session.snapshot()


@router.post(
    "/upload",
    response_model=SessionSnapshot,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_upload(
    session: SessionController = Depends(get_session),
) -> SessionSnapshot:
    """
    Create the store and upload the queued documents in the background.

    Also used to retry after a failed upload; documents already ingested
    are not uploaded again.
    """
    session.start_upload()
    return session.snapshot()


@router.post("/new-chat", response_model=SessionSnapshot)
async def new_chat(
    session: SessionController = Depends(get_session),
) -> SessionSnapshot:
    """Delete the current store and clear the transcript."""
    await session.new_chat()
    return session.snapshot()
