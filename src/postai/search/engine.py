"""Endpoint search — substring matching over a Document with a model-assisted fallback."""

from __future__ import annotations

import json
from collections.abc import Iterable
from enum import Enum

from postai.llm import TextCompletion
from postai.models import NO_DESCRIPTION, Document, Endpoint
from postai.prompts import render_prompt
from postai.utils.jsonextract import extract_json_array
from postai.utils.logging import get_logger

logger = get_logger(__name__)

# Longest description sent per endpoint in the fallback prompt
_PROMPT_DESCRIPTION_CHARS = 160


class SearchField(str, Enum):
    """Endpoint attributes a query can be matched against."""

    PATH = "path"
    METHOD = "method"
    OPERATION_ID = "operationId"
    DESCRIPTION = "description"
    TAGS = "tags"
    ALL = "all"

    @classmethod
    def parse(cls, value: str) -> SearchField | None:
        lowered = value.strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        if lowered in ("summary", "operation_id", "operation"):
            return cls.DESCRIPTION if lowered == "summary" else cls.OPERATION_ID
        return None


_EXPANDED_ALL = frozenset(
    {SearchField.PATH, SearchField.METHOD, SearchField.OPERATION_ID, SearchField.DESCRIPTION, SearchField.TAGS}
)


def normalize_fields(fields: Iterable[SearchField | str] | None) -> frozenset[SearchField]:
    """Resolve a field scope, expanding `all`. Unknown names are ignored; an empty scope means all."""
    resolved: set[SearchField] = set()
    for raw in fields or ():
        field = raw if isinstance(raw, SearchField) else SearchField.parse(raw)
        if field is None:
            continue
        if field is SearchField.ALL:
            return _EXPANDED_ALL
        resolved.add(field)
    return frozenset(resolved) or _EXPANDED_ALL


def _field_texts(endpoint: Endpoint, field: SearchField) -> list[str]:
    if field is SearchField.PATH:
        return [endpoint.path]
    if field is SearchField.METHOD:
        return [endpoint.method]
    if field is SearchField.OPERATION_ID:
        return [endpoint.operation_id] if endpoint.operation_id else []
    if field is SearchField.DESCRIPTION:
        return [text for text in (endpoint.summary, endpoint.description) if text and text != NO_DESCRIPTION]
    if field is SearchField.TAGS:
        return list(endpoint.tags)
    return []


def _dump(value: object) -> str:
    return json.dumps(value, ensure_ascii=False, default=str).lower()


def search(document: Document, query: str, fields: Iterable[SearchField | str] | None = None) -> list[Endpoint]:
    """Case-insensitive substring search across the requested fields.

    An endpoint matches when any requested field contains the query.

    Args:
        document: Catalogue to search.
        query: Free-text query.
        fields: Field scope; None or `all` searches every field.

    Returns:
        Matching endpoints in document order.
    """
    needle = query.strip().lower()
    if not needle:
        return []
    scope = normalize_fields(fields)
    results: list[Endpoint] = []
    for endpoint in document.endpoints:
        for field in scope:
            if any(needle in text.lower() for text in _field_texts(endpoint, field)):
                results.append(endpoint)
                break
    return results


def search_requests(document: Document, query: str) -> list[Endpoint]:
    """Search request-side details only: path, parameter names/descriptions, request body."""
    needle = query.strip().lower()
    if not needle:
        return []
    results: list[Endpoint] = []
    for endpoint in document.endpoints:
        if needle in endpoint.path.lower():
            results.append(endpoint)
            continue
        if any(
            needle in p.name.lower() or (p.description and needle in p.description.lower())
            for p in endpoint.parameters
        ):
            results.append(endpoint)
            continue
        if endpoint.request_body is not None and needle in _dump(endpoint.request_body):
            results.append(endpoint)
    return results


def search_responses(document: Document, query: str) -> list[Endpoint]:
    """Search response-side details only: status codes, descriptions and content schemas."""
    needle = query.strip().lower()
    if not needle:
        return []
    results: list[Endpoint] = []
    for endpoint in document.endpoints:
        if not endpoint.responses:
            continue
        dumped = _dump({code: spec.model_dump(by_alias=True) for code, spec in endpoint.responses.items()})
        if needle in dumped:
            results.append(endpoint)
    return results


def verify_results(document: Document | None, results: Iterable[Endpoint]) -> list[Endpoint]:
    """Drop any result whose (path, method) is not in the document's catalogue.

    Args:
        document: Current document; None means nothing can be verified.
        results: Candidate endpoints from any search path.

    Returns:
        Only endpoints that exist in the document, without duplicates.
    """
    if document is None:
        return []
    known = {ep.key for ep in document.endpoints}
    verified: list[Endpoint] = []
    seen: set[tuple[str, str]] = set()
    dropped = 0
    for endpoint in results:
        key = endpoint.key
        if key not in known:
            dropped += 1
            continue
        if key in seen:
            continue
        seen.add(key)
        verified.append(endpoint)
    if dropped:
        logger.warning("search_results_dropped", count=dropped)
    return verified


class EndpointSearchEngine:
    """Deterministic search with an optional text-completion fallback."""

    def __init__(self, completion: TextCompletion | None = None, semantic_enabled: bool = True) -> None:
        """Initialize the engine.

        Args:
            completion: Text-completion collaborator for the fallback; None disables it.
            semantic_enabled: Master switch for the fallback.
        """
        self._completion = completion
        self._semantic_enabled = semantic_enabled and completion is not None

    async def find(
        self,
        document: Document,
        query: str,
        fields: Iterable[SearchField | str] | None = None,
    ) -> list[Endpoint]:
        """Search, falling back to semantic matching when a description-scoped pass finds nothing.

        Args:
            document: Catalogue to search.
            query: Free-text query.
            fields: Field scope.

        Returns:
            Matching endpoints. Never raises for fallback failures.
        """
        scope = normalize_fields(fields)
        results = search(document, query, scope)
        if results or SearchField.DESCRIPTION not in scope or not self._semantic_enabled:
            return results
        return await self.semantic_search(document, query)

    async def semantic_search(self, document: Document, query: str) -> list[Endpoint]:
        """Ask the text-completion collaborator which endpoint indices match.

        Returns:
            Endpoints for valid, de-duplicated indices in reply order; empty on any failure.
        """
        if self._completion is None or not document.endpoints or not query.strip():
            return []

        rows = [
            {
                "index": idx,
                "method": ep.method,
                "path": ep.path,
                "summary": ep.summary,
                "description": ep.description[:_PROMPT_DESCRIPTION_CHARS],
            }
            for idx, ep in enumerate(document.endpoints)
        ]
        prompt = render_prompt("semantic_search", query=query, rows=rows)

        try:
            reply = await self._completion.invoke([{"role": "user", "content": prompt}])
        except Exception as exc:  # noqa: BLE001
            logger.warning("search_fallback_failed", query=query, error=str(exc))
            return []

        indices = extract_json_array(reply)
        if indices is None:
            logger.warning("search_fallback_unparseable", query=query, reply=reply[:200])
            return []

        results: list[Endpoint] = []
        seen: set[int] = set()
        for raw in indices:
            if isinstance(raw, bool):
                continue
            try:
                idx = int(raw)
            except (TypeError, ValueError):
                continue
            if idx in seen or not 0 <= idx < len(document.endpoints):
                continue
            seen.add(idx)
            results.append(document.endpoints[idx])

        logger.info("search_fallback_matched", query=query, results=len(results))
        return results
