"""File-backed document store — one JSON file per saved Document."""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import ValidationError

from postai.errors import NotFoundError, StorageError
from postai.models import Document
from postai.utils.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS_RE = re.compile(r"[^a-z0-9가-힣_-]", re.IGNORECASE)


def sanitize_name(name: str) -> str:
    """Map a user-chosen name onto a safe, lowercase file stem.

    Args:
        name: Document name as typed by the user.

    Returns:
        Name with every character outside [A-Za-z0-9_-] and Hangul replaced by `_`.
    """
    return _UNSAFE_CHARS_RE.sub("_", name.strip()).lower()


class DocumentStore:
    """Persist named Documents as pretty-printed JSON files under a directory."""

    def __init__(self, directory: str | Path) -> None:
        """Initialize the store. The directory is created on first write.

        Args:
            directory: Filesystem directory for saved documents.
        """
        self._dir = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._dir

    def _path_for(self, name: str) -> Path:
        stem = sanitize_name(name)
        if not stem:
            raise StorageError("Document name must not be empty")
        return self._dir / f"{stem}.json"

    def save(self, name: str, document: Document) -> Path:
        """Write a document, replacing any file saved under the same name.

        Raises:
            StorageError: When the file cannot be written.
        """
        path = self._path_for(name)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            path.write_text(document.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Failed to save document '{name}': {exc}") from exc
        logger.info("document_saved", name=path.stem, path=str(path))
        return path

    def load(self, name: str) -> Document:
        """Read a saved document.

        Raises:
            NotFoundError: If nothing is saved under the name.
            StorageError: When the file exists but cannot be read or decoded.
        """
        path = self._path_for(name)
        if not path.is_file():
            raise NotFoundError(f"No saved document named '{name}'")
        try:
            return Document.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StorageError(f"Failed to read document '{name}': {exc}") from exc
        except ValidationError as exc:
            raise StorageError(f"Saved document '{name}' is corrupt: {exc.error_count()} validation errors") from exc

    def list(self) -> list[str]:
        """Names of all saved documents, sorted."""
        if not self._dir.is_dir():
            return []
        return sorted(p.stem for p in self._dir.glob("*.json"))

    def delete(self, name: str) -> None:
        """Delete a saved document.

        Raises:
            NotFoundError: If nothing is saved under the name.
        """
        path = self._path_for(name)
        if not path.is_file():
            raise NotFoundError(f"No saved document named '{name}'")
        try:
            path.unlink()
        except OSError as exc:
            raise StorageError(f"Failed to delete document '{name}': {exc}") from exc
        logger.info("document_deleted", name=path.stem)

    def delete_all(self) -> int:
        """Delete every saved document and return how many were removed."""
        removed = 0
        for stem in self.list():
            try:
                (self._dir / f"{stem}.json").unlink()
                removed += 1
            except OSError as exc:
                raise StorageError(f"Failed to delete document '{stem}': {exc}") from exc
        logger.info("documents_deleted", count=removed)
        return removed

    def load_many(self, names: list[str]) -> tuple[list[tuple[str, Document]], list[tuple[str, str]]]:
        """Load several documents, collecting failures instead of stopping.

        Args:
            names: Names to load.

        Returns:
            (loaded (name, document) pairs, failed (name, reason) pairs).
        """
        loaded: list[tuple[str, Document]] = []
        failed: list[tuple[str, str]] = []
        for name in names:
            try:
                loaded.append((name, self.load(name)))
            except (NotFoundError, StorageError) as exc:
                logger.warning("document_load_failed", name=name, error=str(exc))
                failed.append((name, str(exc)))
        return loaded, failed

    def load_all(self) -> tuple[list[tuple[str, Document]], list[tuple[str, str]]]:
        return self.load_many(self.list())
