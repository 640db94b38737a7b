"""Document source contract."""

from typing import Protocol, runtime_checkable

from docscore.schemas import DocumentRef


@runtime_checkable
class DocumentSource(Protocol):
    """Lists and reads the documents a run scores.

    Implementations raise ``DocumentNotFound`` or ``DocumentAccessDenied``
    (both ``DocumentFetchFailure``).
    """

    async def list_documents(self, locator: str) -> list[DocumentRef]:
        """List the documents under ``locator`` in a stable order."""
        ...

    async def fetch_text(self, document_id: str) -> str:
        """Return the text of one document."""
        ...
