"""
Pydantic models for the session API: lifecycle state and snapshots.
"""

from enum import Enum

from pydantic import BaseModel, Field

from docchat.models.chat import ChatMessage


class SessionState(str, Enum):
    """Lifecycle of a chat session."""

    NO_KEY = "no_key"
    KEY_SELECTED = "key_selected"
    FILES_PENDING = "files_pending"
    UPLOADING = "uploading"
    UPLOAD_FAILED = "upload_failed"
    READY = "ready"
    QUERYING = "querying"


class ProgressView(BaseModel):
    current: int
    total: int
    file_name: str


class SessionSnapshot(BaseModel):
    """Everything a frontend needs to render the current session."""

    state: SessionState
    has_api_key: bool = False
    pending_documents: list[str] = Field(
        default_factory=list, description="File names queued for upload"
    )
    document_name: str = Field("", description="Names of the indexed documents")
    store_name: str | None = Field(None, description="Remote store, if one exists")
    progress: ProgressView | None = None
    transcript: list[ChatMessage] = Field(default_factory=list)
    example_questions: list[str] = Field(default_factory=list)
    last_error: str | None = None


class ApiKeyRequest(BaseModel):
    """Request body for POST /session/key."""

    api_key: str = Field(..., min_length=1, description="Gemini API key")


class SampleView(BaseModel):
    id: str
    name: str
    file_name: str
