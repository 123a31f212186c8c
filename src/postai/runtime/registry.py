"""Document registry — named, parsed API documents held in memory with a current selection."""

from __future__ import annotations

from postai.errors import NotFoundError
from postai.models import Document
from postai.utils.logging import get_logger

logger = get_logger(__name__)


def normalize_name(name: str) -> str:
    """Registry keys are case-insensitive and whitespace-trimmed."""
    return name.strip().lower()


class DocumentRegistry:
    """Holds zero or more named Documents and tracks the one used for unqualified commands.

    Mutations happen only on the turn-processing path, one turn at a time, so no
    locking is done here.
    """

    def __init__(self, recent_urls_limit: int = 10) -> None:
        """Initialize an empty registry.

        Args:
            recent_urls_limit: Maximum number of remembered source URLs.
        """
        self._documents: dict[str, Document] = {}
        self._current: str | None = None
        self._recent_urls: list[str] = []
        self._recent_limit = recent_urls_limit
        self._base_url_override: str | None = None

    # -- documents ---------------------------------------------------------

    def add(self, name: str, document: Document) -> None:
        """Insert or replace a document without touching the current selection."""
        key = normalize_name(name)
        self._documents[key] = document
        logger.debug("document_registered", name=key, endpoints=len(document.endpoints))

    def get(self, name: str) -> Document:
        """Return a document by name.

        Raises:
            NotFoundError: If no document is registered under the name.
        """
        key = normalize_name(name)
        if key not in self._documents:
            raise NotFoundError(f"Document '{name}' is not loaded. Loaded: {self.list_names()}")
        return self._documents[key]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_name(name) in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def set_current(self, document: Document, name: str | None = None) -> None:
        """Make a document current, registering it first when a name is given.

        Without a name the document must already be registered; it is looked up by identity.
        """
        if name is not None:
            self.add(name, document)
            self._current = normalize_name(name)
            return
        for key, doc in self._documents.items():
            if doc is document:
                self._current = key
                return
        raise NotFoundError("Cannot select an unregistered document without a name")

    def set_current_by_name(self, name: str) -> bool:
        """Switch the current document. Returns False, changing nothing, if the name is unknown."""
        key = normalize_name(name)
        if key not in self._documents:
            return False
        self._current = key
        return True

    def remove(self, name: str) -> bool:
        """Remove a document; a removed current selection moves to a remaining entry.

        Returns:
            True if something was removed.
        """
        key = normalize_name(name)
        if key not in self._documents:
            return False
        del self._documents[key]
        if self._current == key:
            self._current = next(iter(self._documents), None)
        logger.debug("document_unregistered", name=key, current=self._current)
        return True

    def clear(self) -> None:
        self._documents.clear()
        self._current = None

    def list_names(self) -> list[str]:
        """Registered names. Callers must not rely on ordering."""
        return list(self._documents)

    @property
    def current(self) -> Document | None:
        if self._current is None:
            return None
        return self._documents.get(self._current)

    @property
    def current_name(self) -> str | None:
        return self._current

    # -- history and overrides --------------------------------------------

    def add_recent_url(self, url: str) -> None:
        """Remember a source URL, most recent first, without duplicates."""
        if url in self._recent_urls:
            self._recent_urls.remove(url)
        self._recent_urls.insert(0, url)
        del self._recent_urls[self._recent_limit :]

    @property
    def recent_urls(self) -> list[str]:
        return list(self._recent_urls)

    def set_base_url_override(self, url: str | None) -> None:
        """Set the user's base URL; validation is left to request execution."""
        self._base_url_override = url or None
        logger.info("base_url_override_set", base_url=self._base_url_override)

    @property
    def base_url_override(self) -> str | None:
        return self._base_url_override
