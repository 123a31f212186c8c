"""Shared pytest fixtures for the POSTAI test suite."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from postai.config import PostAIConfig
from postai.models import Document, Endpoint, Parameter, ResponseSpec
from postai.pipeline.pipeline import CommandPipeline
from postai.pipeline.session import Session
from postai.utils.logging import setup_logging

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class ScriptedCompletion:
    """Text-completion fake that replays canned replies and records every prompt."""

    def __init__(self, replies: list[str | Exception]) -> None:
        self.replies = list(replies)
        self.calls: list[list[dict[str, str]]] = []

    async def invoke(self, messages: list[dict[str, str]]) -> str:
        self.calls.append(messages)
        if not self.replies:
            raise AssertionError("ScriptedCompletion ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def _quiet_logging() -> None:
    """Route structlog through stderr at WARNING so CLI output on stdout stays clean."""
    setup_logging("WARNING")


@pytest.fixture
def postai_config(tmp_path: Path) -> PostAIConfig:
    """Return a test PostAIConfig pointing at a temp storage directory."""
    return PostAIConfig(
        storage_dir=str(tmp_path / "swagger"),
        log_level="DEBUG",
        debug=True,
        llm_api_key="",
        request_timeout_ms=5000,
        semantic_search_enabled=True,
    )


@pytest.fixture
def make_completion() -> Callable[..., ScriptedCompletion]:
    """Factory for scripted text-completion fakes."""

    def _make(*replies: str | Exception) -> ScriptedCompletion:
        return ScriptedCompletion(list(replies))

    return _make


@pytest.fixture
def petstore_document() -> Document:
    """A small Swagger 2.0 style catalogue with a declared base URL."""
    return Document(
        title="Swagger Petstore",
        version="1.0.7",
        spec_version="Swagger 2.0",
        base_url="https://petstore.swagger.io/v2",
        endpoints=[
            Endpoint(
                path="/pet/findByStatus",
                method="GET",
                operation_id="findPetsByStatus",
                summary="Finds Pets by status",
                description="Multiple status values can be provided with comma separated strings",
                tags=["pet"],
                parameters=[Parameter(name="status", location="query", required=True, description="Status filter")],
                responses={"200": ResponseSpec(description="successful operation")},
            ),
            Endpoint(
                path="/pet/{petId}",
                method="GET",
                operation_id="getPetById",
                summary="Find pet by ID",
                tags=["pet"],
                parameters=[Parameter(name="petId", location="path", required=True, description="ID of pet")],
                responses={"404": ResponseSpec(description="Pet not found")},
            ),
            Endpoint(
                path="/pet",
                method="POST",
                operation_id="addPet",
                summary="Add a new pet to the store",
                tags=["pet"],
                parameters=[Parameter(name="body", location="body", required=True)],
                responses={"405": ResponseSpec(description="Invalid input")},
            ),
            Endpoint(
                path="/pet/{petId}",
                method="DELETE",
                operation_id="deletePet",
                tags=["pet"],
                parameters=[
                    Parameter(name="petId", location="path", required=True),
                    Parameter(name="api_key", location="header", required=True),
                ],
            ),
            Endpoint(
                path="/store/inventory",
                method="GET",
                operation_id="getInventory",
                summary="Returns pet inventories by status",
                tags=["store"],
                responses={"200": ResponseSpec(description="map of status codes to quantities")},
            ),
        ],
    )


@pytest.fixture
def users_document() -> Document:
    """An OpenAPI 3 style catalogue for a user service."""
    return Document(
        title="User Service",
        version="2.1.0",
        spec_version="OpenAPI 3.0.3",
        base_url="https://api.example.com",
        endpoints=[
            Endpoint(path="/users", method="GET", operation_id="listUsers", summary="List users", tags=["users"]),
            Endpoint(
                path="/users",
                method="POST",
                operation_id="createUser",
                summary="Create a user",
                tags=["users"],
                request_body={"required": True, "content": {"application/json": {}}},
            ),
            Endpoint(
                path="/users/{id}",
                method="GET",
                operation_id="getUser",
                summary="Get a user",
                tags=["users"],
                parameters=[Parameter(name="id", location="path", required=True)],
            ),
        ],
    )


def _json_handler(routes: dict[tuple[str, str], tuple[int, Any]]) -> Callable[[httpx.Request], httpx.Response]:
    """MockTransport handler answering (METHOD, url-without-query) pairs with JSON."""

    def _handle(request: httpx.Request) -> httpx.Response:
        key = (request.method, str(request.url).split("?")[0])
        if key not in routes:
            return httpx.Response(404, json={"message": f"no route for {key[0]} {key[1]}"})
        status, body = routes[key]
        return httpx.Response(status, json=body)

    return _handle


@pytest.fixture
def json_routes() -> Callable[..., Callable[[httpx.Request], httpx.Response]]:
    """Factory for MockTransport handlers keyed by (METHOD, url-without-query)."""
    return _json_handler


@pytest.fixture
def make_pipeline(postai_config: PostAIConfig) -> Callable[..., CommandPipeline]:
    """Factory for a pipeline whose HTTP traffic goes to an httpx.MockTransport."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
        completion: ScriptedCompletion | None = None,
    ) -> CommandPipeline:
        transport = httpx.MockTransport(handler or _json_handler({}))
        session = Session.from_config(
            postai_config,
            completion=completion,
            http_transport=transport,
            use_llm=completion is not None,
        )
        return CommandPipeline(session)

    return _make
