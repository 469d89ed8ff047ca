"""
Sample documents that can be fetched instead of uploading local files.
"""

import logging
from dataclasses import dataclass

import httpx

from docchat.core.errors import SampleFetchError
from docchat.models.documents import LocalDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleDocument:
    """A publicly hosted example document."""

    id: str
    name: str
    url: str
    file_name: str


SAMPLE_DOCUMENTS = (
    SampleDocument(
        id="hyundai-i10-manual",
        name="Hyundai i10 Manual",
        url=(
            "https://www.hyundai.com/content/dam/hyundai/in/en/data/"
            "connect-to-service/owners-manual/2025/i20&i20nlineFromOct2023-Present.pdf"
        ),
        file_name="hyundai-i10-manual.pdf",
    ),
    SampleDocument(
        id="lg-washer-manual",
        name="LG Washer Manual",
        url="https://www.lg.com/us/support/products/documents/WM2077CW.pdf",
        file_name="lg-washer-manual.pdf",
    ),
)


class SampleLibrary:
    """Looks up and downloads sample documents."""

    def __init__(
        self,
        samples: tuple[SampleDocument, ...] = SAMPLE_DOCUMENTS,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._samples = {sample.id: sample for sample in samples}
        self._timeout = timeout
        self._transport = transport

    def catalogue(self) -> list[SampleDocument]:
        return list(self._samples.values())

    def get(self, sample_id: str) -> SampleDocument:
        try:
            return self._samples[sample_id]
        except KeyError:
            raise KeyError(f"Unknown sample document '{sample_id}'") from None

    async def fetch(self, sample_id: str) -> LocalDocument:
        """
        Download a sample and wrap it like a user-selected file.

        Raises:
            KeyError: If the sample id is unknown.
            SampleFetchError: If the download fails.
        """
        sample = self.get(sample_id)
        logger.info("Fetching sample document '%s' from %s", sample.name, sample.url)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(sample.url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SampleFetchError(f"Failed to fetch {sample.name}: {exc}") from exc

        return LocalDocument.from_bytes(sample.file_name, response.content)
