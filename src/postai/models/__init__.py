"""Pydantic models for POSTAI — API catalogue, requests, execution results, and chat."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

# Placeholder used wherever a document omits summary/description text
NO_DESCRIPTION = "No description"

# Methods enumerated when flattening a document
CATALOGUE_METHODS = ("get", "post", "put", "delete", "patch")


# ---------------------------------------------------------------------------
# API catalogue models
# ---------------------------------------------------------------------------


class Parameter(BaseModel):
    """A single input to an endpoint."""

    name: str
    location: str = "query"  # path | query | header | body | formData
    required: bool = False
    description: str | None = None
    schema_: Any = Field(default=None, alias="schema")

    model_config = {"populate_by_name": True}


class ResponseSpec(BaseModel):
    """Declared response for one status code."""

    description: str = ""
    content: dict[str, Any] | None = None
    schema_: Any = Field(default=None, alias="schema")  # Swagger 2.0 carries the schema directly

    model_config = {"populate_by_name": True}


class Endpoint(BaseModel):
    """One (path, method) operation within a document."""

    path: str
    method: str
    operation_id: str | None = None
    summary: str = NO_DESCRIPTION
    description: str = NO_DESCRIPTION
    tags: list[str] = Field(default_factory=list)
    parameters: list[Parameter] = Field(default_factory=list)
    request_body: Any = None
    responses: dict[str, ResponseSpec] = Field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the endpoint inside its document."""
        return (self.path, self.method.upper())


class Document(BaseModel):
    """Normalized, immutable catalogue parsed from one API description source."""

    title: str
    version: str
    description: str | None = None
    spec_version: str  # "Swagger 2.0" | "OpenAPI 3.0.3" ...
    base_url: str = ""
    source: str | None = None
    endpoints: list[Endpoint] = Field(default_factory=list)

    model_config = {"frozen": True}

    def find_endpoint(self, path: str, method: str) -> Endpoint | None:
        """Return the endpoint with exactly this path template and method."""
        wanted = (path, method.upper())
        for endpoint in self.endpoints:
            if endpoint.key == wanted:
                return endpoint
        return None


# ---------------------------------------------------------------------------
# Request / execution models
# ---------------------------------------------------------------------------


class MissingParameter(BaseModel):
    """A required parameter that was not supplied when building a request."""

    name: str
    location: str
    description: str | None = None

    def describe(self) -> str:
        text = f"{self.name} ({self.location})"
        if self.description:
            text += f": {self.description}"
        return text


class PendingRequest(BaseModel):
    """A built request awaiting user confirmation."""

    url: str
    method: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    query_params: dict[str, str] | None = None
    timeout_ms: int = 5000
    missing: list[MissingParameter] = Field(default_factory=list)

    def preview(self) -> dict[str, Any]:
        """JSON-friendly view shown to the user before confirmation."""
        data: dict[str, Any] = {
            "url": self.url,
            "method": self.method,
            "headers": self.headers,
        }
        if self.query_params:
            data["params"] = self.query_params
        if self.body is not None:
            data["body"] = self.body
        data["timeout"] = self.timeout_ms
        return data


class MissingInfoReport(BaseModel):
    """Guided refusal returned by the builder when a request cannot be formed."""

    reason: str
    suggestions: list[str] = Field(default_factory=list)

    def render(self) -> str:
        lines = [self.reason]
        lines.extend(f"- {s}" for s in self.suggestions)
        return "\n".join(lines)


class TransportResponse(BaseModel):
    """Raw outcome of one HTTP exchange, whatever the status code."""

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    timing_ms: int = 0


class ErrorInfo(BaseModel):
    """Connection-level failure details."""

    name: str = "TransportError"
    message: str
    code: str | None = None


class ExecutionResult(BaseModel):
    """Outcome of running a PendingRequest."""

    status: Literal["success", "error"]
    status_code: int | None = None
    response_time_ms: int = 0
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    error: ErrorInfo | None = None

    @property
    def is_http_success(self) -> bool:
        return self.status == "success" and self.status_code is not None and 200 <= self.status_code < 300


# ---------------------------------------------------------------------------
# Presentation / conversation models
# ---------------------------------------------------------------------------


class Presentation(BaseModel):
    """Display-ready rendering of an ExecutionResult."""

    mode: Literal["table", "json", "summary", "error"]
    status_summary: str
    content: str
    language: str | None = None  # code-block language, None for prose
    additional_info: str | None = None
    truncated: bool = False


class ChatMessage(BaseModel):
    """One transcript entry."""

    role: Literal["user", "assistant", "system"]
    content: str
    code_block: bool = False
    code_language: str | None = None


def assistant(content: str, code_language: str | None = None, code_block: bool | None = None) -> ChatMessage:
    """Build an assistant message; a code language implies a code block."""
    if code_block is None:
        code_block = code_language is not None
    return ChatMessage(role="assistant", content=content, code_block=code_block, code_language=code_language)


# ---------------------------------------------------------------------------
# Text-completion reply payloads
# ---------------------------------------------------------------------------


IntentAction = Literal[
    "process_api_request",
    "request_more_info",
    "provide_help",
    "swagger_operation",
    "other_operation",
]


class IntentDecision(BaseModel):
    """Intent classifier verdict for a free-form turn."""

    action: IntentAction
    user_request: str = Field(default="", alias="userRequest")
    next_step: str = Field(default="", alias="nextStep")
    missing_info: list[str] = Field(default_factory=list, alias="missingInfo")
    help_message: str | None = Field(default=None, alias="helpMessage")
    swagger_command: str | None = Field(default=None, alias="swaggerCommand")

    model_config = {"populate_by_name": True}


class ApiUnderstanding(BaseModel):
    """Structured reading of a natural-language API request."""

    endpoint: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, Any] = Field(default_factory=dict, alias="queryParams")
    body: Any = None
    description: str = ""
    missing_info: list[str] = Field(default_factory=list, alias="missingInfo")

    model_config = {"populate_by_name": True}


class AuthInfo(BaseModel):
    """Authentication material to merge into a request."""

    auth_type: str = Field(default="none", alias="authType")
    headers: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, Any] = Field(default_factory=dict, alias="queryParams")
    security_advice: str | None = Field(default=None, alias="securityAdvice")

    model_config = {"populate_by_name": True}


class SearchTerms(BaseModel):
    """Search keywords and field scope extracted from a phrase."""

    search_terms: str = Field(alias="searchTerms")
    fields: list[str] = Field(default_factory=lambda: ["all"])

    model_config = {"populate_by_name": True}
