"""Tests for LocalDocumentSource."""

from __future__ import annotations

from pathlib import Path

import pytest

from docscore.exceptions import DocumentAccessDenied, DocumentNotFound
from docscore.sources import LocalDocumentSource


@pytest.fixture
def inbox(tmp_path: Path) -> Path:
    """A document root with a nested folder and a non-document file."""
    (tmp_path / "b.txt").write_text("Bob")
    (tmp_path / "a.md").write_text("# Ada")
    (tmp_path / "photo.png").write_bytes(b"\x89PNG")
    nested = tmp_path / "2024"
    nested.mkdir()
    (nested / "c.txt").write_text("Cy")
    return tmp_path


class TestListDocuments:
    """Tests for list_documents."""

    async def test_lists_matching_files_by_name(self, inbox: Path) -> None:
        """Only text and markdown files directly in the folder are listed."""
        source = LocalDocumentSource(inbox)

        refs = await source.list_documents()

        assert [ref.id for ref in refs] == ["a.md", "b.txt"]
        assert [ref.name for ref in refs] == ["a.md", "b.txt"]

    async def test_nested_locator(self, inbox: Path) -> None:
        """Ids stay relative to the root."""
        source = LocalDocumentSource(inbox)

        refs = await source.list_documents("2024")

        assert [ref.id for ref in refs] == ["2024/c.txt"]
        assert refs[0].name == "c.txt"

    async def test_custom_patterns(self, inbox: Path) -> None:
        """Patterns select which files count as documents."""
        source = LocalDocumentSource(inbox, patterns=("*.txt",))

        assert [ref.id for ref in await source.list_documents()] == ["b.txt"]

    async def test_missing_directory(self, inbox: Path) -> None:
        """A locator that is not a directory is not found."""
        source = LocalDocumentSource(inbox)

        with pytest.raises(DocumentNotFound):
            await source.list_documents("missing")

    async def test_outside_root(self, inbox: Path) -> None:
        """Locators escaping the root are refused."""
        source = LocalDocumentSource(inbox / "2024")

        with pytest.raises(DocumentAccessDenied):
            await source.list_documents("..")


class TestFetchText:
    """Tests for fetch_text."""

    async def test_reads_listed_document(self, inbox: Path) -> None:
        """Listed ids can be fetched."""
        source = LocalDocumentSource(inbox)
        refs = await source.list_documents("2024")

        assert await source.fetch_text(refs[0].id) == "Cy"

    async def test_missing_document(self, inbox: Path) -> None:
        """Unknown ids raise DocumentNotFound."""
        source = LocalDocumentSource(inbox)

        with pytest.raises(DocumentNotFound):
            await source.fetch_text("nobody.txt")

    async def test_directory_is_not_a_document(self, inbox: Path) -> None:
        """Directories cannot be fetched."""
        source = LocalDocumentSource(inbox)

        with pytest.raises(DocumentNotFound):
            await source.fetch_text("2024")

    async def test_path_traversal(self, inbox: Path) -> None:
        """Ids escaping the root are refused."""
        source = LocalDocumentSource(inbox / "2024")

        with pytest.raises(DocumentAccessDenied):
            await source.fetch_text("../b.txt")

    async def test_undecodable_file(self, inbox: Path) -> None:
        """Binary content is reported as unreadable."""
        (inbox / "binary.txt").write_bytes(b"\xff\xfe\xfa")
        source = LocalDocumentSource(inbox)

        with pytest.raises(DocumentAccessDenied):
            await source.fetch_text("binary.txt")
