"""Request builder — turns a command or a selected endpoint into an executable PendingRequest."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl

import yaml

from postai.errors import MissingBaseUrlError
from postai.models import Document, Endpoint, MissingInfoReport, MissingParameter, PendingRequest
from postai.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/json"

COMMAND_RE = re.compile(
    r"^(GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS)\s+(\S+)(?:\s+(.+))?$",
    re.IGNORECASE | re.DOTALL,
)

# {name} and {{name}} placeholders in a path or URL
_TOKEN_RE = re.compile(r"\{\{\s*([^{}\s]+)\s*\}\}|\{([^{}]+)\}")

_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


@dataclass
class ParsedCommand:
    """A method-prefixed command split into its parts."""

    method: str
    raw_path: str
    raw_params: str = ""


def _is_plain_words(residual: str) -> bool:
    """Residual text that is neither a `{...}` body nor `key=value` pairs."""
    if not residual or residual.startswith("{"):
        return False
    return any("=" not in token for token in re.split(r"[&\s]+", residual) if token)


def parse_command(text: str) -> ParsedCommand | None:
    """Split `METHOD <path> [json-body | key=value ...]`.

    A method word followed by a token and then plain words ("get me the users") is
    natural language, not a command.

    Args:
        text: One user turn.

    Returns:
        ParsedCommand, or None when the turn does not have the command shape.
    """
    match = COMMAND_RE.match(text.strip())
    if not match:
        return None
    raw_params = (match.group(3) or "").strip()
    if _is_plain_words(raw_params):
        return None
    return ParsedCommand(method=match.group(1).upper(), raw_path=match.group(2), raw_params=raw_params)


def parse_residual(text: str) -> tuple[Any, dict[str, str]]:
    """Classify the text after the path as a body or as query-style values.

    `{...}` is a body: JSON first, then a YAML flow mapping so `{'name': 'x'}` also works.
    Anything else is split into key=value pairs on `&` and whitespace.

    Args:
        text: Residual text.

    Returns:
        (body or None, key/value mapping).
    """
    stripped = text.strip()
    if not stripped:
        return None, {}

    if stripped.startswith("{") and stripped.endswith("}"):
        try:
            return json.loads(stripped), {}
        except json.JSONDecodeError:
            pass
        try:
            loaded = yaml.safe_load(stripped)
        except yaml.YAMLError:
            loaded = None
        if isinstance(loaded, dict):
            return loaded, {}
        logger.debug("body_not_structured", length=len(stripped))
        return stripped, {}

    values: dict[str, str] = {}
    for token in re.split(r"[&\s]+", stripped):
        if "=" not in token:
            if token:
                logger.debug("residual_token_ignored", token=token)
            continue
        key, _, value = token.partition("=")
        if key:
            values[key] = value
    return None, values


def substitute_path(template: str, values: dict[str, Any]) -> tuple[str, set[str]]:
    """Replace the first occurrence of each `{name}` token that has a value.

    Unresolved tokens stay verbatim.

    Args:
        template: Path template or URL.
        values: Candidate values by name.

    Returns:
        (resolved path, names consumed).
    """
    consumed: set[str] = set()

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        if name in values and name not in consumed:
            consumed.add(name)
            return str(values[name])
        return match.group(0)

    return _TOKEN_RE.sub(_replace, template), consumed


def merge_headers(base: dict[str, str], extra: dict[str, Any] | None) -> dict[str, str]:
    """Overlay headers; keys compare case-insensitively but keep the spelling given last."""
    merged = dict(base)
    for key, value in (extra or {}).items():
        for existing in [k for k in merged if k.lower() == key.lower()]:
            del merged[existing]
        merged[key] = str(value)
    return merged


def join_url(base_url: str, path: str) -> str:
    if not path:
        return base_url
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def _template_pattern(template: str) -> re.Pattern[str]:
    parts = re.split(r"(\{[^{}]+\})", template)
    regex = "".join("([^/]+)" if part.startswith("{") and part.endswith("}") else re.escape(part) for part in parts)
    return re.compile(f"^{regex}/?$")


def match_endpoint(document: Document | None, method: str, path: str) -> tuple[Endpoint | None, dict[str, str]]:
    """Find the catalogued endpoint a freeform path refers to.

    The path may be the template itself or a concrete path filling its placeholders.

    Args:
        document: Current document, if any.
        method: HTTP method.
        path: Path without query string, relative to the base URL.

    Returns:
        (endpoint or None, path values captured from a concrete path).
    """
    if document is None:
        return None, {}
    exact = document.find_endpoint(path, method)
    if exact is not None:
        return exact, {}
    for endpoint in document.endpoints:
        if endpoint.method != method.upper():
            continue
        match = _template_pattern(endpoint.path).match(path)
        if match:
            names = re.findall(r"\{([^{}]+)\}", endpoint.path)
            return endpoint, dict(zip(names, match.groups()))
    return None, {}


def resolve_base_url(document: Document | None, base_url_override: str | None) -> str:
    """Pick the base URL for a relative path: the user's override, then the document's own.

    Raises:
        MissingBaseUrlError: When neither is available.
    """
    if base_url_override:
        return base_url_override
    if document is not None and document.base_url:
        return document.base_url
    raise MissingBaseUrlError("no base URL is known")


def _relative_path(raw_path: str, document: Document | None) -> str:
    """Strip the document base URL from an absolute URL so it can be matched to a template."""
    if document is not None and document.base_url and raw_path.startswith(document.base_url):
        return raw_path[len(document.base_url) :] or "/"
    return raw_path


@dataclass
class _Values:
    """Value bags by parameter location."""

    path: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, Any] = field(default_factory=dict)
    body: Any = None


class RequestBuilder:
    """Assemble PendingRequests from freeform commands or endpoint metadata."""

    def __init__(self, default_timeout_ms: int = 5000) -> None:
        self._timeout_ms = default_timeout_ms

    def build_from_command(
        self,
        method: str,
        raw_path: str,
        raw_params: str = "",
        document: Document | None = None,
        base_url_override: str | None = None,
        headers: dict[str, Any] | None = None,
        query_params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> PendingRequest | MissingInfoReport:
        """Build from `METHOD path [params]` without requiring endpoint metadata.

        When the path names a catalogued endpoint, its metadata routes values to the
        right location and yields required-parameter advisories.

        Args:
            method: HTTP method.
            raw_path: Relative path, path template, or absolute URL, optionally with `?query`.
            raw_params: Residual text (JSON body or key=value pairs).
            document: Current document, if any.
            base_url_override: User-set base URL.
            headers: Extra headers (e.g. merged authentication).
            query_params: Extra query values.
            body: Explicit body; wins over a body parsed from raw_params.

        Returns:
            PendingRequest, or MissingInfoReport when no base URL can be resolved.
        """
        method = method.upper()
        path_part, _, query_string = raw_path.partition("?")
        parsed_body, residual_values = parse_residual(raw_params)

        values: dict[str, Any] = dict(parse_qsl(query_string, keep_blank_values=True))
        values.update({k: v for k, v in (query_params or {}).items() if v is not None})
        values.update(residual_values)

        endpoint, captured = match_endpoint(document, method, _relative_path(path_part, document))

        bags = _Values(headers=dict(headers or {}), body=body if body is not None else parsed_body)
        bags.path.update(captured)
        for name, value in values.items():
            location = self._location_for(endpoint, name, path_part)
            if location == "header":
                bags.headers[name] = value
            elif location in ("body", "formData"):
                if bags.body is None:
                    bags.body = {}
                if isinstance(bags.body, dict):
                    bags.body[name] = value
                else:
                    logger.debug("body_value_dropped", name=name)
            elif location == "path":
                bags.path[name] = value
            else:
                bags.query[name] = value

        return self._assemble(method, path_part, bags, endpoint, document, base_url_override)

    def build_for_endpoint(
        self,
        endpoint: Endpoint,
        params_by_location: dict[str, dict[str, Any]] | None = None,
        document: Document | None = None,
        base_url_override: str | None = None,
        body: Any = None,
    ) -> PendingRequest | MissingInfoReport:
        """Build a request for a selected endpoint from values grouped by location.

        Args:
            endpoint: Endpoint chosen from the catalogue.
            params_by_location: {"path": {...}, "query": {...}, "header": {...}, "formData": {...}}.
            document: Document the endpoint belongs to.
            base_url_override: User-set base URL.
            body: Request body.

        Returns:
            PendingRequest, or MissingInfoReport when no base URL can be resolved.
        """
        grouped = params_by_location or {}
        bags = _Values(
            path=dict(grouped.get("path", {})),
            query=dict(grouped.get("query", {})),
            headers=dict(grouped.get("header", {})),
            body=body,
        )
        form = {**grouped.get("formData", {}), **grouped.get("body", {})}
        if form:
            bags.body = {**(bags.body if isinstance(bags.body, dict) else {}), **form}
        return self._assemble(endpoint.method.upper(), endpoint.path, bags, endpoint, document, base_url_override)

    def _location_for(self, endpoint: Endpoint | None, name: str, path_template: str) -> str:
        if endpoint is not None:
            for param in endpoint.parameters:
                if param.name == name:
                    return param.location
        if re.search(r"\{\{?\s*" + re.escape(name) + r"\s*\}?\}", path_template):
            return "path"
        return "query"

    def _assemble(
        self,
        method: str,
        path_template: str,
        bags: _Values,
        endpoint: Endpoint | None,
        document: Document | None,
        base_url_override: str | None,
    ) -> PendingRequest | MissingInfoReport:
        path, consumed = substitute_path(path_template, {**bags.query, **bags.path})
        query = {k: str(v) for k, v in bags.query.items() if k not in consumed}

        if _ABSOLUTE_URL_RE.match(path):
            url = path
        else:
            try:
                url = join_url(resolve_base_url(document, base_url_override), path)
            except MissingBaseUrlError as exc:
                logger.info("base_url_missing", path=path)
                return MissingInfoReport(
                    reason=f"Cannot build a request for '{path}': {exc}.",
                    suggestions=[
                        "use an absolute URL, e.g. GET https://api.example.com/users",
                        "set a base URL with: set-base-url https://api.example.com",
                        "load an API document that declares its server: swagger https://.../openapi.json",
                    ],
                )

        missing = self._missing_required(endpoint, consumed | set(bags.path), query, bags) if endpoint else []
        request = PendingRequest(
            url=url,
            method=method,
            headers=merge_headers({"Content-Type": DEFAULT_CONTENT_TYPE}, bags.headers),
            body=bags.body,
            query_params=query or None,
            timeout_ms=self._timeout_ms,
            missing=missing,
        )
        logger.info("request_built", method=method, url=url, missing=len(missing))
        return request

    def _missing_required(
        self,
        endpoint: Endpoint,
        path_names: set[str],
        query: dict[str, str],
        bags: _Values,
    ) -> list[MissingParameter]:
        header_names = {k.lower() for k in bags.headers}
        body_keys = set(bags.body) if isinstance(bags.body, dict) else set()
        missing: list[MissingParameter] = []

        for param in endpoint.parameters:
            if not param.required:
                continue
            if param.location == "path":
                present = param.name in path_names
            elif param.location == "query":
                present = param.name in query
            elif param.location == "header":
                present = param.name.lower() in header_names
            elif param.location == "formData":
                present = param.name in body_keys
            elif param.location == "body":
                present = bags.body is not None
            else:
                present = True
            if not present:
                missing.append(
                    MissingParameter(name=param.name, location=param.location, description=param.description)
                )

        request_body = endpoint.request_body
        if isinstance(request_body, dict) and request_body.get("required") and bags.body is None:
            missing.append(
                MissingParameter(name="requestBody", location="body", description=request_body.get("description"))
            )
        return missing
