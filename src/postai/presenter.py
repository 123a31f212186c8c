"""Response presenter — renders an ExecutionResult as a table, JSON preview, summary, or error."""

from __future__ import annotations

import json
from numbers import Number
from typing import Any

from postai.models import ExecutionResult, Presentation

# Keys that mark a response object as one page of a larger collection
_PAGINATION_KEYS = frozenset(
    {"page", "pages", "per_page", "perpage", "pagesize", "page_size", "limit", "offset", "total", "totalcount",
     "total_count", "totalpages", "total_pages", "next", "previous", "cursor", "next_cursor", "count", "pagination"}
)

_STATUS_REMEDIES: dict[int, tuple[str, str]] = {
    400: ("The server rejected the request as malformed.", "Check the parameter names, types and body against the document."),
    401: ("Authentication is missing or invalid.", "Provide credentials, e.g. an Authorization header or API key."),
    403: ("The credentials do not allow this operation.", "Use an account or token with the required permissions."),
    404: ("The resource or path does not exist.", "Check the path and path parameters, or search the document for the endpoint."),
    405: ("The method is not allowed on this path.", "Search the document for the methods this path supports."),
    408: ("The server timed out waiting for the request.", "Retry, or raise POSTAI_REQUEST_TIMEOUT_MS."),
    409: ("The request conflicts with the current state of the resource.", "Fetch the resource again and retry with fresh values."),
    415: ("The server does not accept this content type.", "Check the Content-Type header the endpoint expects."),
    422: ("The server could not validate the request body.", "Compare the body fields with the endpoint's request schema."),
    429: ("Too many requests.", "Wait before sending the request again."),
}

_TRANSPORT_REMEDIES: dict[str, str] = {
    "ETIMEDOUT": "The server did not answer in time. Retry, or raise POSTAI_REQUEST_TIMEOUT_MS.",
    "ECONNREFUSED": "The host could not be reached. Check the base URL, your network, and that the server is running.",
    "EREQUEST": "The request could not be sent. Check that the URL is absolute and well-formed.",
}


def truncate_cell(value: Any, width: int) -> str:
    """Render one table cell on a single line, cut to `width` characters."""
    text = "" if value is None else str(value)
    text = text.replace("|", "\\|").replace("\n", " ")
    if len(text) > width:
        text = text[: max(width - 3, 0)] + "..."
    return text


def markdown_table(columns: list[str], rows: list[list[Any]], cell_width: int) -> str:
    """Build a markdown table from column headers and row values."""
    lines = [
        "| " + " | ".join(truncate_cell(c, cell_width) for c in columns) + " |",
        "|" + "|".join("---" for _ in columns) + "|",
    ]
    for row in rows:
        lines.append("| " + " | ".join(truncate_cell(v, cell_width) for v in row) + " |")
    return "\n".join(lines)


def _status_line(result: ExecutionResult) -> str:
    if result.status == "error":
        return f"Request failed before a response arrived ({result.response_time_ms} ms)"
    return f"HTTP {result.status_code} ({result.response_time_ms} ms)"


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, Number, bool))


def _is_flat_table(body: Any) -> bool:
    """A non-empty list of flat objects sharing one key set."""
    if not isinstance(body, list) or not body:
        return False
    if not all(isinstance(row, dict) and row for row in body):
        return False
    keys = set(body[0])
    return all(set(row) == keys and all(_is_scalar(v) for v in row.values()) for row in body)


def _collection_in(body: Any) -> tuple[str, list[Any]] | None:
    """Find the item list of a paginated response object."""
    if not isinstance(body, dict):
        return None
    lowered = {str(k).lower() for k in body}
    nested = body.get("pagination") or body.get("meta")
    if not (lowered & _PAGINATION_KEYS or (isinstance(nested, dict) and {str(k).lower() for k in nested} & _PAGINATION_KEYS)):
        return None
    for key, value in body.items():
        if isinstance(value, list):
            return str(key), value
    return None


class ResponsePresenter:
    """Choose a display mode from the shape of the response and keep output bounded."""

    def __init__(self, json_preview_chars: int = 2000, table_max_rows: int = 20, cell_width: int = 30) -> None:
        self._preview_chars = json_preview_chars
        self._max_rows = table_max_rows
        self._cell_width = cell_width

    def present(self, result: ExecutionResult) -> Presentation:
        """Render an execution result.

        Args:
            result: Outcome of running a request.

        Returns:
            Presentation in table, json, summary, or error mode.
        """
        if result.status == "error" or not result.is_http_success:
            return self._error(result)

        body = result.body
        if _is_flat_table(body):
            return self._table(result, body)
        collection = _collection_in(body)
        if collection is not None:
            return self._summary(result, body, *collection)
        return self._json(result, body)

    # -- modes -------------------------------------------------------------

    def _table(self, result: ExecutionResult, rows: list[dict[str, Any]]) -> Presentation:
        columns = [str(c) for c in rows[0]]
        shown = rows[: self._max_rows]
        table = markdown_table(columns, [[row.get(c) for c in rows[0]] for row in shown], self._cell_width)

        hidden = len(rows) - len(shown)
        return Presentation(
            mode="table",
            status_summary=f"{_status_line(result)} - {len(rows)} rows",
            content=table,
            language="markdown",
            additional_info=f"{hidden} more rows not shown." if hidden else None,
            truncated=hidden > 0,
        )

    def _summary(self, result: ExecutionResult, body: dict[str, Any], key: str, items: list[Any]) -> Presentation:
        lines = [f"Collection '{key}': {len(items)} items on this page"]
        for meta_key, meta_value in body.items():
            if str(meta_key).lower() in _PAGINATION_KEYS and _is_scalar(meta_value):
                lines.append(f"- {meta_key}: {meta_value}")
        nested = body.get("pagination") or body.get("meta")
        if isinstance(nested, dict):
            lines.extend(f"- {k}: {v}" for k, v in nested.items() if _is_scalar(v))

        numeric: dict[str, list[float]] = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            for field_name, value in item.items():
                if isinstance(value, Number) and not isinstance(value, bool):
                    numeric.setdefault(field_name, []).append(float(value))
        for field_name, numbers in numeric.items():
            lines.append(f"- {field_name}: min {_fmt(min(numbers))}, max {_fmt(max(numbers))}")

        return Presentation(
            mode="summary",
            status_summary=f"{_status_line(result)} - {len(items)} items",
            content="\n".join(lines),
            additional_info="Adjust the page parameters to fetch other pages.",
        )

    def _json(self, result: ExecutionResult, body: Any) -> Presentation:
        if body is None:
            text = "(empty body)"
        elif isinstance(body, str):
            text = body
        else:
            text = json.dumps(body, indent=2, ensure_ascii=False, default=str)

        truncated = len(text) > self._preview_chars
        info = None
        if truncated:
            info = f"Response truncated: {len(text) - self._preview_chars} more characters not shown."
            text = text[: self._preview_chars] + "\n... (truncated)"
        return Presentation(
            mode="json",
            status_summary=_status_line(result),
            content=text,
            language="json" if not isinstance(body, str) else None,
            additional_info=info,
            truncated=truncated,
        )

    def _error(self, result: ExecutionResult) -> Presentation:
        if result.status == "error":
            error = result.error
            code = error.code if error else None
            message = error.message if error else "unknown transport failure"
            remedy = _TRANSPORT_REMEDIES.get(code or "", _TRANSPORT_REMEDIES["EREQUEST"])
            content = f"Cause: {message}" + (f" [{code}]" if code else "") + f"\nNext step: {remedy}"
            return Presentation(mode="error", status_summary=_status_line(result), content=content)

        status = result.status_code or 0
        if status in _STATUS_REMEDIES:
            cause, remedy = _STATUS_REMEDIES[status]
        elif status >= 500:
            cause, remedy = "The server failed to handle the request.", "Retry later or contact the API provider."
        else:
            cause, remedy = f"Unexpected status {status}.", "Inspect the response body for details."

        lines = [f"Cause: {cause}", f"Next step: {remedy}"]
        detail = _error_detail(result.body)
        if detail:
            lines.append(f"Server said: {detail[: self._preview_chars]}")
        return Presentation(mode="error", status_summary=_status_line(result), content="\n".join(lines))


def _fmt(number: float) -> str:
    return str(int(number)) if number.is_integer() else f"{number:g}"


def _error_detail(body: Any) -> str:
    if body is None:
        return ""
    if isinstance(body, dict):
        for key in ("message", "error_description", "detail", "error"):
            if isinstance(body.get(key), str):
                return body[key]
    if isinstance(body, str):
        return body.strip()
    return json.dumps(body, ensure_ascii=False, default=str)
