"""Literal command handlers — document storage, document load, endpoint search, help."""

from __future__ import annotations

import json
import re

from postai.models import ChatMessage, Document, Endpoint, assistant
from postai.parser.swagger_parser import parse_document
from postai.pipeline.agents import extract_search_terms
from postai.pipeline.session import Session
from postai.presenter import markdown_table
from postai.runtime.store import sanitize_name
from postai.search.engine import SearchField, search_requests, search_responses, verify_results
from postai.utils.logging import get_logger

logger = get_logger(__name__)

STORAGE_RE = re.compile(r"^swagger\s+(?!https?://)(\S+)(?:\s+(.*))?$", re.IGNORECASE | re.DOTALL)

_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
_LOAD_HINT_RE = re.compile(r"\b(swagger|openapi|load)\b|로드|불러", re.IGNORECASE)

SEARCH_RE = re.compile(r"^(?:search|find|검색)\s+(?:(request|response)\s+)?(.+)$", re.IGNORECASE | re.DOTALL)

# Natural phrasing with at least this many words is reduced to keywords first
_PHRASE_WORDS = 3

# Endpoints listed after a document load
LOAD_PREVIEW_COUNT = 5

STORAGE_USAGE = """Unknown swagger command. Available commands:
- swagger save <name>: save the current document
- swagger load <name>: load a saved document
- swagger load <name1,name2,...>: load several saved documents
- swagger load all: load every saved document
- swagger use <name>: switch to a loaded document
- swagger loaded: list loaded documents
- swagger list: list saved documents
- swagger delete <name>: delete a saved document
- swagger deleteall: delete every saved document"""

HELP_TEXT = """# POSTAI command guide

## API documents
- Load a document: swagger https://petstore.swagger.io/v2/swagger.json
- Save the current document: swagger save petstore
- Load saved documents:
  * one: swagger load petstore
  * several: swagger load petstore,userapi
  * all: swagger load all
- Switch documents: swagger use petstore
- List documents:
  * saved: swagger list
  * loaded: swagger loaded
- Delete saved documents:
  * one: swagger delete petstore
  * all: swagger deleteall

## Endpoint search
- Keyword: search user
- Field: search path:/pet, search tags:store, search method:post
- Request or response details: search request status, search response Order

## Requests
- GET: GET /pet/findByStatus?status=available
- POST: POST /pet {"name": "fluffy", "status": "available"}
- Base URL: set-base-url https://api.example.com
- Send the prepared request: 실행 or execute
- Discard it: 취소 or cancel

## Natural language
Anything else is interpreted by the assistant, e.g. "fetch the list of users".

Help: help or 도움말"""


def document_summary(document: Document) -> str:
    base_url = document.base_url or "not declared"
    return (
        f"{document.title} (v{document.version}), {document.spec_version}, "
        f"{len(document.endpoints)} endpoints, base URL {base_url}"
    )


def help_messages() -> list[ChatMessage]:
    return [assistant(HELP_TEXT)]


# ---------------------------------------------------------------------------
# Document storage
# ---------------------------------------------------------------------------


async def handle_storage(session: Session, text: str) -> list[ChatMessage]:
    """Dispatch a `swagger <sub> [args]` storage command.

    Args:
        session: Conversation session.
        text: The full turn.

    Returns:
        Assistant messages.
    """
    match = STORAGE_RE.match(text.strip())
    if match is None:
        return [assistant(STORAGE_USAGE)]
    sub = match.group(1).lower()
    args = (match.group(2) or "").strip()
    logger.info("storage_command", command=sub)

    if sub == "save":
        return _save(session, args)
    if sub == "load":
        return _load(session, args)
    if sub == "list":
        return _list_saved(session)
    if sub == "loaded":
        return _list_loaded(session)
    if sub in ("delete", "remove"):
        return _delete(session, args)
    if sub in ("deleteall", "clear"):
        return _delete_all(session)
    if sub in ("use", "select"):
        return _use(session, args)
    return [assistant(STORAGE_USAGE)]


def _save(session: Session, name: str) -> list[ChatMessage]:
    document = session.registry.current
    if document is None:
        return [assistant("There is no document to save. Load one first, e.g. swagger <url>.")]
    if not name:
        return [assistant("Give the document a name: swagger save <name>")]
    path = session.store.save(name, document)
    return [assistant(f"Saved the current document as '{path.stem}'.")]


def _load(session: Session, args: str) -> list[ChatMessage]:
    if not args or args.lower() == "all":
        return _load_all(session)
    if "," in args:
        names = [n.strip() for n in args.split(",") if n.strip()]
        return _load_many(session, names)

    document = session.store.load(args)
    session.registry.set_current(document, args)
    return [
        assistant(f"Loaded saved document '{args}'."),
        assistant(document_summary(document)),
    ]


def _loaded_report(loaded: list[tuple[str, Document]], failed: list[tuple[str, str]]) -> list[ChatMessage]:
    messages: list[ChatMessage] = []
    if loaded:
        messages.append(assistant(f"Loaded {len(loaded)} document(s)."))
        messages.append(
            assistant("\n".join(f"- {name}: {document_summary(doc)}" for name, doc in loaded), code_block=True)
        )
    if failed:
        messages.append(assistant(f"Failed to load {len(failed)} document(s)."))
        messages.append(assistant("\n".join(f"- {name}: {reason}" for name, reason in failed), code_block=True))
    return messages


def _load_many(session: Session, names: list[str]) -> list[ChatMessage]:
    loaded, failed = session.store.load_many(names)
    for name, document in loaded:
        session.registry.add(name, document)
    if loaded:
        session.registry.set_current_by_name(loaded[-1][0])
    return _loaded_report(loaded, failed) or [assistant("No documents were loaded.")]


def _load_all(session: Session) -> list[ChatMessage]:
    loaded, failed = session.store.load_all()
    if not loaded:
        messages = [assistant("There are no saved documents to load.")]
        return messages + _loaded_report([], failed)
    for name, document in loaded:
        session.registry.add(name, document)
    session.registry.set_current_by_name(loaded[0][0])
    return _loaded_report(loaded, failed)


def _list_saved(session: Session) -> list[ChatMessage]:
    names = session.store.list()
    if not names:
        return [assistant("No saved documents.")]
    return [assistant("Saved documents:"), assistant("\n".join(names), code_block=True)]


def _list_loaded(session: Session) -> list[ChatMessage]:
    registry = session.registry
    names = registry.list_names()
    if not names:
        return [assistant("No documents are loaded.")]
    lines = [f"* {name} (current)" if name == registry.current_name else f"- {name}" for name in names]
    return [
        assistant(f"Loaded documents ({len(names)}):"),
        assistant("\n".join(lines), code_block=True),
        assistant("Switch with: swagger use <name>"),
    ]


def _delete(session: Session, name: str) -> list[ChatMessage]:
    if not name:
        return [assistant("Name the document to delete: swagger delete <name>")]
    session.store.delete(name)
    return [assistant(f"Deleted saved document '{name}'.")]


def _delete_all(session: Session) -> list[ChatMessage]:
    count = session.store.delete_all()
    if count == 0:
        return [assistant("There are no saved documents to delete.")]
    return [assistant(f"Deleted {count} saved document(s).")]


def _use(session: Session, name: str) -> list[ChatMessage]:
    if not name:
        return [assistant("Name the document to switch to: swagger use <name>")]
    if not session.registry.set_current_by_name(name):
        return [
            assistant(f"No document named '{name}' is loaded."),
            assistant("List loaded documents with: swagger loaded"),
        ]
    document = session.registry.current
    if document is None:
        return [assistant(f"No document named '{name}' is loaded.")]
    return [assistant(f"Switched to '{name}'."), assistant(document_summary(document))]


# ---------------------------------------------------------------------------
# Document load from URL
# ---------------------------------------------------------------------------


def is_document_load(text: str) -> bool:
    """A turn with a URL plus a load keyword (`swagger <url>`, `<url> 로드` ...)."""
    return _URL_RE.search(text) is not None and _LOAD_HINT_RE.search(_URL_RE.sub(" ", text)) is not None


async def handle_document_load(session: Session, text: str) -> list[ChatMessage]:
    """Fetch, parse and select the document named by the URL in the turn.

    Raises:
        ParseError: When the document cannot be fetched or parsed.
    """
    match = _URL_RE.search(text)
    if match is None:
        return [assistant("No document URL found. Use: swagger https://host/openapi.json")]
    url = match.group(0).rstrip(".,;)")

    document = await parse_document(
        url,
        timeout_seconds=session.config.fetch_timeout_seconds,
        transport=session.fetch_transport,
    )
    name = sanitize_name(document.title) or "api"
    session.registry.set_current(document, name)
    session.registry.add_recent_url(url)
    logger.info("document_loaded", name=name, url=url, endpoints=len(document.endpoints))

    preview = [f"{ep.method} {ep.path} - {ep.summary}" for ep in document.endpoints[:LOAD_PREVIEW_COUNT]]
    messages = [
        assistant(f"Loaded {document.title} (v{document.version}, {document.spec_version}) as '{name}'."),
        assistant(f"{len(document.endpoints)} endpoints available. First endpoints:"),
        assistant(json.dumps(preview, indent=2, ensure_ascii=False), code_language="json"),
    ]
    if not document.base_url:
        messages.append(assistant("This document declares no server. Set one with: set-base-url <url>"))
    return messages


# ---------------------------------------------------------------------------
# Endpoint search
# ---------------------------------------------------------------------------


def _scoped_terms(terms: str) -> tuple[list[str] | None, str]:
    """Split `field:terms` into a field scope and the terms; plain terms keep the default scope."""
    field_name, sep, rest = terms.partition(":")
    if sep and rest.strip() and " " not in field_name:
        field = SearchField.parse(field_name)
        if field is not None:
            return [field.value], rest.strip()
    return None, terms


async def handle_search(session: Session, text: str) -> list[ChatMessage]:
    """Run `search [request|response] <terms>` against the current document."""
    match = SEARCH_RE.match(text.strip())
    if match is None:
        return [assistant("Usage: search [request|response] <terms>")]
    document = session.registry.current
    if document is None:
        return [assistant("No document is loaded. Load one first, e.g. swagger <url>.")]

    scope = (match.group(1) or "").lower()
    terms = match.group(2).strip()

    if scope == "request":
        results = search_requests(document, terms)
    elif scope == "response":
        results = search_responses(document, terms)
    else:
        fields, terms = _scoped_terms(terms)
        if fields is None and session.completion is not None and len(terms.split()) >= _PHRASE_WORDS:
            extracted = await extract_search_terms(session.completion, terms)
            terms, fields = extracted.search_terms or terms, extracted.fields
        results = await session.search_engine.find(document, terms, fields)

    return search_messages(session, document, terms, verify_results(document, results))


def search_messages(session: Session, document: Document, terms: str, results: list[Endpoint]) -> list[ChatMessage]:
    """Render verified search results as a bounded table."""
    if not results:
        return [assistant(f"No endpoints match '{terms}' in {document.title}.")]

    limit = session.config.search_preview_limit
    rows = [[ep.method, ep.path, ep.summary, ep.operation_id or ""] for ep in results[:limit]]
    table = markdown_table(["Method", "Path", "Summary", "Operation ID"], rows, session.config.table_cell_width)
    messages = [
        assistant(f"Found {len(results)} endpoint(s) matching '{terms}':"),
        assistant(table, code_language="markdown"),
    ]
    if len(results) > limit:
        messages.append(assistant(f"{len(results) - limit} more endpoint(s) not shown. Narrow the search terms."))
    return messages
