"""
Document, store and upload-operation records used by the service layer.
"""

from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

from docchat.core.errors import UnsupportedDocumentError

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".md": "text/markdown",
}


@dataclass(frozen=True)
class Store:
    """A remote document collection."""

    name: str
    display_name: str


@dataclass(frozen=True)
class LocalDocument:
    """A file selected by the user, ready to be uploaded to a store."""

    file_name: str
    content: bytes = field(repr=False)
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_bytes(cls, file_name: str, content: bytes) -> "LocalDocument":
        """
        Build a document from raw bytes, validating its type.

        The mime type is derived from the file extension.

        Raises:
            UnsupportedDocumentError: For unknown extensions or empty content.
        """
        name = PurePath(file_name or "").name
        suffix = PurePath(name).suffix.lower()
        if suffix not in MIME_TYPES:
            raise UnsupportedDocumentError(
                f"'{name or file_name}' is not a PDF, .txt or .md file"
            )
        if not content:
            raise UnsupportedDocumentError(f"'{name}' is empty")

        return cls(file_name=name, content=content, mime_type=MIME_TYPES[suffix])


@dataclass
class UploadOperation:
    """An in-flight ingestion job as reported by the remote service."""

    name: str
    done: bool = False
    error: dict[str, Any] | None = None
    handle: Any = field(default=None, repr=False)

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def error_message(self) -> str:
        if not self.error:
            return ""
        return str(self.error.get("message") or self.error)


@dataclass(frozen=True)
class UploadProgress:
    """Progress of a batch: 1-based index of the file that just started."""

    current: int
    total: int
    file_name: str


@dataclass
class UploadBatchResult:
    """Outcome of uploading a batch of documents into one store."""

    uploaded: list[LocalDocument] = field(default_factory=list)
    failures: list["UploadFailure"] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class UploadFailure:
    """A file that did not make it into the store, with the error raised for it."""

    file_name: str
    reason: str
    error: Exception | None = field(default=None, compare=False, repr=False)
