"""Document source backed by a local directory of text files."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

from docscore.exceptions import DocumentAccessDenied, DocumentNotFound
from docscore.logging import get_logger
from docscore.schemas import DocumentRef

logger = get_logger(__name__)

DEFAULT_PATTERNS = ("*.txt", "*.md")


class LocalDocumentSource:
    """Reads documents from files under a root directory.

    Document ids are paths relative to the root, using forward slashes.
    Nothing outside the root can be listed or read.

    Usage:
        source = LocalDocumentSource("/data/resumes")
        refs = await source.list_documents("2024-q1")
        text = await source.fetch_text(refs[0].id)
    """

    def __init__(
        self,
        root: str | Path,
        patterns: Sequence[str] = DEFAULT_PATTERNS,
        encoding: str = "utf-8",
    ) -> None:
        self._root = Path(root).expanduser().resolve()
        self._patterns = tuple(patterns)
        self._encoding = encoding

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, relative: str) -> Path:
        path = Path(relative)
        if not path.is_absolute():
            path = self._root / path
        path = path.resolve()
        if not path.is_relative_to(self._root):
            raise DocumentAccessDenied(f"{relative} is outside {self._root}")
        return path

    async def list_documents(self, locator: str = ".") -> list[DocumentRef]:
        """List matching files directly inside ``locator``, ordered by name.

        Raises:
            DocumentNotFound: The locator is not an existing directory
            DocumentAccessDenied: The locator is outside the root or unreadable
        """
        directory = self._resolve(locator)
        if not directory.is_dir():
            raise DocumentNotFound(f"No such directory: {locator}")

        try:
            files = {
                path
                for pattern in self._patterns
                for path in directory.glob(pattern)
                if path.is_file()
            }
        except PermissionError as e:
            raise DocumentAccessDenied(f"Cannot list {locator}: {e}") from e

        refs = [
            DocumentRef(id=path.relative_to(self._root).as_posix(), name=path.name)
            for path in sorted(files, key=lambda p: p.name)
        ]
        logger.debug("Found {} documents in {}", len(refs), directory)
        return refs

    async def fetch_text(self, document_id: str) -> str:
        """Read one document.

        Raises:
            DocumentNotFound: The file does not exist
            DocumentAccessDenied: The file is outside the root or unreadable
        """
        path = self._resolve(document_id)
        try:
            return await asyncio.to_thread(path.read_text, encoding=self._encoding)
        except FileNotFoundError as e:
            raise DocumentNotFound(f"No such document: {document_id}") from e
        except IsADirectoryError as e:
            raise DocumentNotFound(f"Not a document: {document_id}") from e
        except PermissionError as e:
            raise DocumentAccessDenied(f"Cannot read {document_id}: {e}") from e
        except UnicodeDecodeError as e:
            raise DocumentAccessDenied(f"{document_id} is not {self._encoding} text") from e
