"""Swagger/OpenAPI parser — converts API descriptions into normalized Document models."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

import httpx
import yaml

from postai.errors import ParseError, UnsupportedSpecError
from postai.models import CATALOGUE_METHODS, NO_DESCRIPTION, Document, Endpoint, Parameter, ResponseSpec
from postai.utils.logging import get_logger

logger = get_logger(__name__)


class SwaggerParser:
    """Parse OpenAPI 3.x / Swagger 2.0 documents into a flat endpoint catalogue.

    The parser only flattens structure. Parameter schemas, request bodies and
    response content are carried through untouched.
    """

    def __init__(
        self,
        source: str | dict[str, Any],
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize parser for one document source.

        Args:
            source: HTTP(S) URL, local file path, or an already-loaded document mapping.
            timeout_seconds: Fetch timeout for remote documents.
            transport: Optional httpx transport (tests inject a MockTransport).
        """
        self._source = source
        self._timeout = timeout_seconds
        self._transport = transport
        self._raw_doc: dict[str, Any] = {}

    async def parse(self) -> Document:
        """Fetch (when needed) and parse the document.

        Returns:
            Normalized Document.

        Raises:
            ParseError: When the source is unreachable, not JSON/YAML, or lacks `info`.
            UnsupportedSpecError: When neither `swagger` nor `openapi` is declared.
        """
        if isinstance(self._source, dict):
            self._raw_doc = self._source
            source_label = None
        else:
            raw_content = await self._fetch_document(self._source)
            self._raw_doc = self._load_document(raw_content)
            source_label = self._source

        spec_version = self._detect_spec_version()
        info = self._raw_doc.get("info")
        if not isinstance(info, dict):
            raise ParseError("API document has no 'info' object (title/version are required)")

        endpoints = self._parse_paths()
        document = Document(
            title=str(info.get("title", "")),
            version=str(info.get("version", "")),
            description=str(info["description"]) if info.get("description") is not None else None,
            spec_version=spec_version,
            base_url=self._derive_base_url(),
            source=source_label,
            endpoints=endpoints,
        )

        logger.info(
            "document_parsed",
            title=document.title,
            spec_version=spec_version,
            total_endpoints=len(endpoints),
        )
        return document

    async def _fetch_document(self, location: str) -> str:
        """Fetch the document from a URL or read it from disk.

        Args:
            location: HTTP(S) URL or filesystem path.

        Returns:
            Raw document content.

        Raises:
            ParseError: When the source cannot be reached or read.
        """
        parsed = urlparse(location)
        if parsed.scheme in ("http", "https"):
            return await self._fetch_remote(location)
        return self._fetch_local(location)

    async def _fetch_remote(self, url: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url, follow_redirects=True)
                response.raise_for_status()
                return response.text
        except httpx.HTTPError as exc:
            raise ParseError(f"Failed to fetch API document from {url}: {exc}") from exc

    def _fetch_local(self, path: str) -> str:
        try:
            with open(path, encoding="utf-8") as f:
                return f.read()
        except OSError as exc:
            raise ParseError(f"Failed to read API document {path}: {exc}") from exc

    def _load_document(self, content: str) -> dict[str, Any]:
        """Parse YAML or JSON content (JSON is a YAML subset).

        Args:
            content: Raw document text.

        Returns:
            Document mapping.

        Raises:
            ParseError: When content is not a JSON/YAML mapping.
        """
        try:
            doc = yaml.safe_load(content)
        except yaml.YAMLError as exc:
            raise ParseError(f"API document is not valid JSON or YAML: {exc}") from exc
        if not isinstance(doc, dict):
            raise ParseError("API document is not a JSON/YAML object")
        return doc

    def _detect_spec_version(self) -> str:
        """Classify the document family.

        Returns:
            Display label such as "Swagger 2.0" or "OpenAPI 3.0.3".

        Raises:
            UnsupportedSpecError: When neither discriminator is present.
        """
        if "swagger" in self._raw_doc:
            return f"Swagger {self._raw_doc['swagger']}"
        if "openapi" in self._raw_doc:
            return f"OpenAPI {self._raw_doc['openapi']}"
        raise UnsupportedSpecError("Document declares neither 'swagger' (v2) nor 'openapi' (v3)")

    def _derive_base_url(self) -> str:
        """Compute the document's base URL.

        Returns:
            v3: first servers[].url; v2: {scheme}://{host}{basePath}; empty when unknown.
        """
        if "openapi" in self._raw_doc:
            servers = self._raw_doc.get("servers") or []
            if servers and isinstance(servers[0], dict):
                return str(servers[0].get("url", ""))
            return ""

        host = self._raw_doc.get("host")
        base_path = self._raw_doc.get("basePath", "") or ""
        if not host:
            return ""
        schemes = self._raw_doc.get("schemes") or ["http"]
        return f"{schemes[0]}://{host}{base_path}"

    def _parse_paths(self) -> list[Endpoint]:
        """Flatten every path item into one Endpoint per catalogued method.

        A repeated (path, method) pair replaces the earlier entry in place.

        Returns:
            Endpoints in document order.
        """
        paths = self._raw_doc.get("paths") or {}
        if not isinstance(paths, dict):
            return []

        endpoints: list[Endpoint] = []
        index: dict[tuple[str, str], int] = {}

        for path, path_item in paths.items():
            if not isinstance(path_item, dict):
                continue
            path_level_params = path_item.get("parameters") or []

            for method, operation in path_item.items():
                if method.lower() not in CATALOGUE_METHODS or not isinstance(operation, dict):
                    continue
                endpoint = self._parse_operation(str(path), method.upper(), operation, path_level_params)
                key = endpoint.key
                if key in index:
                    endpoints[index[key]] = endpoint
                else:
                    index[key] = len(endpoints)
                    endpoints.append(endpoint)

        return endpoints

    def _parse_operation(
        self,
        path: str,
        method: str,
        operation: dict[str, Any],
        path_level_params: list[Any],
    ) -> Endpoint:
        """Parse a single operation object.

        Args:
            path: Path template.
            method: Upper-case HTTP method.
            operation: Operation object.
            path_level_params: Parameters declared on the path item.

        Returns:
            Normalized Endpoint.
        """
        operation_params = operation.get("parameters") or []
        return Endpoint(
            path=path,
            method=method,
            operation_id=operation.get("operationId"),
            summary=str(operation.get("summary") or NO_DESCRIPTION),
            description=str(operation.get("description") or NO_DESCRIPTION),
            tags=[str(t) for t in operation.get("tags") or []],
            parameters=self._parse_parameters(list(path_level_params) + list(operation_params)),
            request_body=operation.get("requestBody"),
            responses=self._parse_responses(operation.get("responses") or {}),
        )

    def _parse_parameters(self, raw_params: list[Any]) -> list[Parameter]:
        """Normalize parameter objects; operation-level entries override path-level ones.

        Args:
            raw_params: Path-level followed by operation-level parameter objects.

        Returns:
            Parameters keyed uniquely by (name, location), in first-seen order.
        """
        params: dict[tuple[str, str], Parameter] = {}
        for raw in raw_params:
            if not isinstance(raw, dict):
                continue
            if "$ref" in raw:
                raw = self._resolve_ref(raw["$ref"]) or {}  # noqa: PLW2901
            name = raw.get("name")
            if not name:
                continue
            location = str(raw.get("in", "query"))
            params[(str(name), location)] = Parameter(
                name=str(name),
                location=location,
                required=bool(raw.get("required", False)),
                description=str(raw["description"]) if raw.get("description") is not None else None,
                schema=raw.get("schema", {k: raw[k] for k in ("type", "format", "enum", "items") if k in raw} or None),
            )
        return list(params.values())

    def _parse_responses(self, responses: dict[str, Any]) -> dict[str, ResponseSpec]:
        result: dict[str, ResponseSpec] = {}
        for status_code, resp in responses.items():
            if not isinstance(resp, dict):
                continue
            if "$ref" in resp:
                resp = self._resolve_ref(resp["$ref"]) or {}  # noqa: PLW2901
            result[str(status_code)] = ResponseSpec(
                description=str(resp.get("description", "")),
                content=resp.get("content"),
                schema=resp.get("schema"),
            )
        return result

    def _resolve_ref(self, ref: str) -> dict[str, Any] | None:
        """Resolve a local $ref pointer such as #/components/parameters/Limit.

        Args:
            ref: JSON pointer reference.

        Returns:
            Referenced mapping, or None for external or dangling references.
        """
        if not ref.startswith("#/"):
            return None

        node: Any = self._raw_doc
        try:
            for part in ref[2:].split("/"):
                node = node[part.replace("~1", "/").replace("~0", "~")]
        except (KeyError, TypeError):
            return None
        return dict(node) if isinstance(node, dict) else None


async def parse_document(
    source: str | dict[str, Any],
    timeout_seconds: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Document:
    """Parse one API description source into a Document.

    Args:
        source: URL, file path, or loaded mapping.
        timeout_seconds: Remote fetch timeout.
        transport: Optional httpx transport override.

    Returns:
        Parsed Document.
    """
    return await SwaggerParser(source, timeout_seconds=timeout_seconds, transport=transport).parse()
