"""Integration tests: full turns through the command pipeline with mocked HTTP and model."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx

from postai.models import ChatMessage, Document, IntentDecision
from postai.pipeline.pipeline import CommandPipeline

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"

PETSTORE_URL = "https://petstore.swagger.io/v2/swagger.yaml"


def _json_block(messages: list[ChatMessage]) -> Any:
    block = next(m for m in messages if m.code_language == "json")
    return json.loads(block.content)


def _text(messages: list[ChatMessage]) -> str:
    return "\n".join(m.content for m in messages)


def _petstore_server(calls: list[httpx.Request]) -> Callable[[httpx.Request], httpx.Response]:
    """Serve the petstore document and a findByStatus response."""
    document = (FIXTURES_DIR / "petstore_v2.yaml").read_text(encoding="utf-8")

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        url = str(request.url)
        if url == PETSTORE_URL:
            return httpx.Response(200, text=document)
        if url.startswith("https://petstore.swagger.io/v2/pet/findByStatus"):
            return httpx.Response(200, json=[{"id": 1, "name": "rex", "status": "available"}])
        return httpx.Response(404, json={"message": "not found"})

    return handler


# -- confirmation state machine -------------------------------------------------


async def test_build_then_execute(
    make_pipeline: Callable[..., CommandPipeline], json_routes: Callable[..., Any]
) -> None:
    """GET /users then 실행 executes exactly the request built from /users."""
    seen: list[httpx.Request] = []
    routes = json_routes({("GET", "https://api.example.com/users"): (200, [{"id": 1, "name": "Ada"}])})

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return routes(request)

    pipeline = make_pipeline(handler)

    await pipeline.handle_turn("set-base-url https://api.example.com")
    built = await pipeline.handle_turn("GET /users")
    assert _json_block(built)["url"] == "https://api.example.com/users"
    assert pipeline.session.awaiting_confirmation

    result = await pipeline.handle_turn("실행")

    assert [str(r.url) for r in seen] == ["https://api.example.com/users"]
    assert result[0].content.startswith("HTTP 200")
    assert "| 1 | Ada |" in result[1].content
    assert pipeline.session.pending is None


async def test_path_without_leading_slash_is_a_command(
    make_pipeline: Callable[..., CommandPipeline], json_routes: Callable[..., Any]
) -> None:
    pipeline = make_pipeline(json_routes({("GET", "https://api.example.com/users"): (200, {"ok": True})}))

    await pipeline.handle_turn("set-base-url https://api.example.com")
    built = await pipeline.handle_turn("GET users")
    executed = await pipeline.handle_turn("execute")

    assert _json_block(built)["url"] == "https://api.example.com/users"
    assert executed[0].content.startswith("HTTP 200")


async def test_load_document_and_build_find_by_status(make_pipeline: Callable[..., CommandPipeline]) -> None:
    calls: list[httpx.Request] = []
    pipeline = make_pipeline(_petstore_server(calls))

    loaded = await pipeline.handle_turn(f"swagger {PETSTORE_URL}")

    assert "Swagger Petstore" in loaded[0].content
    assert "'swagger_petstore'" in loaded[0].content
    assert len(_json_block(loaded)) == 5
    assert pipeline.session.registry.current_name == "swagger_petstore"
    assert pipeline.session.registry.recent_urls == [PETSTORE_URL]

    built = await pipeline.handle_turn("GET /pet/findByStatus status=available")

    assert _json_block(built) == {
        "url": "https://petstore.swagger.io/v2/pet/findByStatus",
        "method": "GET",
        "headers": {"Content-Type": "application/json"},
        "params": {"status": "available"},
        "timeout": 5000,
    }

    executed = await pipeline.handle_turn("execute")

    assert calls[-1].url.params["status"] == "available"
    assert "rex" in _text(executed)


async def test_natural_language_load_phrase(make_pipeline: Callable[..., CommandPipeline]) -> None:
    pipeline = make_pipeline(_petstore_server([]))

    messages = await pipeline.handle_turn(f"{PETSTORE_URL} 로드해줘")

    assert pipeline.session.registry.current is not None
    assert "8 endpoints" in _text(messages)


async def test_cancel_discards_pending(make_pipeline: Callable[..., CommandPipeline], users_document: Document) -> None:
    pipeline = make_pipeline()
    pipeline.session.registry.set_current(users_document, "users")

    await pipeline.handle_turn("GET /users")
    cancelled = await pipeline.handle_turn("취소")
    after = await pipeline.handle_turn("execute")

    assert cancelled[0].content == "Request cancelled."
    assert "no prepared request to execute" in after[0].content


async def test_confirm_and_cancel_while_idle(make_pipeline: Callable[..., CommandPipeline]) -> None:
    pipeline = make_pipeline()

    nothing_to_run = await pipeline.handle_turn("EXECUTE")
    nothing_to_cancel = await pipeline.handle_turn("cancel")

    assert "no prepared request to execute" in nothing_to_run[0].content
    assert "no prepared request to cancel" in nothing_to_cancel[0].content


async def test_newer_request_supersedes_pending(
    make_pipeline: Callable[..., CommandPipeline], json_routes: Callable[..., Any]
) -> None:
    seen: list[str] = []
    routes = json_routes({("GET", "https://api.example.com/b"): (200, {"ok": True})})

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return routes(request)

    pipeline = make_pipeline(handler)
    await pipeline.handle_turn("baseurl https://api.example.com")
    await pipeline.handle_turn("GET /a")
    await pipeline.handle_turn("GET /b")
    await pipeline.handle_turn("실행")

    assert seen == ["https://api.example.com/b"]


async def test_unrelated_turn_clears_pending(
    make_pipeline: Callable[..., CommandPipeline], users_document: Document
) -> None:
    pipeline = make_pipeline()
    pipeline.session.registry.set_current(users_document, "users")

    await pipeline.handle_turn("GET /users")
    await pipeline.handle_turn("help")
    after = await pipeline.handle_turn("실행")

    assert "no prepared request" in after[0].content


async def test_missing_base_url_guidance(make_pipeline: Callable[..., CommandPipeline]) -> None:
    """A relative path with an empty registry gets guidance and no pending request."""
    pipeline = make_pipeline()

    messages = await pipeline.handle_turn("GET /users")

    assert "no base URL is known" in messages[0].content
    assert "set-base-url" in messages[0].content
    assert pipeline.session.pending is None


async def test_advisories_for_missing_required(
    make_pipeline: Callable[..., CommandPipeline], petstore_document: Document
) -> None:
    pipeline = make_pipeline()
    pipeline.session.registry.set_current(petstore_document, "petstore")

    messages = await pipeline.handle_turn("DELETE /pet/3")

    assert "api_key (header)" in _text(messages)
    assert pipeline.session.pending is not None


async def test_http_error_and_transport_failure(make_pipeline: Callable[..., CommandPipeline]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/down":
            raise httpx.ConnectError("connection refused")
        return httpx.Response(401, json={"message": "token expired"})

    pipeline = make_pipeline(handler)

    await pipeline.handle_turn("GET https://api.example.com/secure")
    unauthorized = await pipeline.handle_turn("execute")
    await pipeline.handle_turn("GET https://api.example.com/down")
    refused = await pipeline.handle_turn("execute")

    assert unauthorized[0].content.startswith("HTTP 401")
    assert "Authentication" in unauthorized[1].content
    assert "token expired" in unauthorized[1].content
    assert "failed before a response" in refused[0].content
    assert "ECONNREFUSED" in refused[1].content


# -- document storage -----------------------------------------------------------


async def test_delete_missing_document(make_pipeline: Callable[..., CommandPipeline]) -> None:
    pipeline = make_pipeline()

    messages = await pipeline.handle_turn("swagger delete missingname")

    assert "No saved document named 'missingname'" in messages[0].content
    assert "swagger list" in messages[0].content


async def test_storage_commands(
    make_pipeline: Callable[..., CommandPipeline], petstore_document: Document, users_document: Document
) -> None:
    pipeline = make_pipeline()
    session = pipeline.session
    session.store.save("alpha", petstore_document)
    session.store.save("beta", users_document)

    loaded = await pipeline.handle_turn("swagger load alpha, beta")
    assert loaded[0].content == "Loaded 2 document(s)."
    assert session.registry.current_name == "beta"

    listing = await pipeline.handle_turn("swagger loaded")
    assert "* beta (current)" in listing[1].content
    assert "- alpha" in listing[1].content

    switched = await pipeline.handle_turn("swagger select alpha")
    assert switched[0].content == "Switched to 'alpha'."
    assert session.registry.current is not None
    assert session.registry.current.title == "Swagger Petstore"

    no_name = await pipeline.handle_turn("swagger save")
    assert "swagger save <name>" in no_name[0].content

    await pipeline.handle_turn("swagger save Gamma")
    saved = await pipeline.handle_turn("swagger list")
    assert saved[1].content.splitlines() == ["alpha", "beta", "gamma"]

    unknown = await pipeline.handle_turn("swagger use nope")
    assert "No document named 'nope' is loaded." == unknown[0].content

    cleared = await pipeline.handle_turn("swagger clear")
    assert cleared[0].content == "Deleted 3 saved document(s)."

    usage = await pipeline.handle_turn("swagger frobnicate")
    assert usage[0].content.startswith("Unknown swagger command")


async def test_load_all_selects_first(
    make_pipeline: Callable[..., CommandPipeline], petstore_document: Document, users_document: Document
) -> None:
    pipeline = make_pipeline()
    pipeline.session.store.save("zeta", petstore_document)
    pipeline.session.store.save("eta", users_document)

    messages = await pipeline.handle_turn("swagger load all")

    assert messages[0].content == "Loaded 2 document(s)."
    assert pipeline.session.registry.current_name == "eta"


async def test_load_with_failures_and_empty_store(make_pipeline: Callable[..., CommandPipeline]) -> None:
    pipeline = make_pipeline()

    empty = await pipeline.handle_turn("swagger load")
    partial = await pipeline.handle_turn("swagger load ghost,phantom")

    assert empty[0].content == "There are no saved documents to load."
    assert partial[0].content == "Failed to load 2 document(s)."
    assert pipeline.session.registry.current is None


async def test_document_load_failure_is_reported(make_pipeline: Callable[..., CommandPipeline]) -> None:
    pipeline = make_pipeline(lambda request: httpx.Response(404, text="missing"))

    messages = await pipeline.handle_turn("swagger https://docs.example.com/openapi.json")

    assert messages[0].content.startswith("Could not load the API document")
    assert pipeline.session.registry.current is None


# -- search ---------------------------------------------------------------------


async def test_search_commands(make_pipeline: Callable[..., CommandPipeline], petstore_document: Document) -> None:
    pipeline = make_pipeline()

    no_doc = await pipeline.handle_turn("search pet")
    assert "No document is loaded" in no_doc[0].content

    pipeline.session.registry.set_current(petstore_document, "petstore")

    plain = await pipeline.handle_turn("search inventory")
    assert plain[0].content == "Found 1 endpoint(s) matching 'inventory':"
    assert "/store/inventory" in plain[1].content
    assert plain[1].content.startswith("| Method | Path | Summary | Operation ID |")

    scoped = await pipeline.handle_turn("find tags:store")
    assert "/store/inventory" in scoped[1].content

    request_scope = await pipeline.handle_turn("search request api_key")
    assert "deletePet" in request_scope[1].content

    response_scope = await pipeline.handle_turn("검색 response pet not found")
    assert "getPetById" in response_scope[1].content

    nothing = await pipeline.handle_turn("search zzz")
    assert nothing[0].content == "No endpoints match 'zzz' in Swagger Petstore."


async def test_semantic_search_results_are_verified(
    make_pipeline: Callable[..., CommandPipeline],
    make_completion: Callable[..., Any],
    petstore_document: Document,
) -> None:
    """Only indices that map to real endpoints are shown."""
    completion = make_completion("[4, 17, 4]")
    pipeline = make_pipeline(completion=completion)
    pipeline.session.registry.set_current(petstore_document, "petstore")

    messages = await pipeline.handle_turn("search stock")

    assert messages[0].content == "Found 1 endpoint(s) matching 'stock':"
    assert "/store/inventory" in messages[1].content


async def test_natural_search_phrase_extracts_terms(
    make_pipeline: Callable[..., CommandPipeline],
    make_completion: Callable[..., Any],
    petstore_document: Document,
) -> None:
    completion = make_completion('{"searchTerms": "status", "fields": ["description"]}')
    pipeline = make_pipeline(completion=completion)
    pipeline.session.registry.set_current(petstore_document, "petstore")

    messages = await pipeline.handle_turn("search pets grouped by their status")

    assert messages[0].content == "Found 2 endpoint(s) matching 'status':"


async def test_search_survives_term_extraction_failure(
    make_pipeline: Callable[..., CommandPipeline],
    make_completion: Callable[..., Any],
    petstore_document: Document,
) -> None:
    pipeline = make_pipeline(completion=make_completion(RuntimeError("model down")))
    pipeline.session.registry.set_current(petstore_document, "petstore")

    messages = await pipeline.handle_turn("search pets by status")

    assert messages[0].content == "Found 1 endpoint(s) matching 'pets by status':"
    assert "/pet/findByStatus" in messages[1].content


# -- classifier fallback --------------------------------------------------------


async def test_fallback_without_model(make_pipeline: Callable[..., CommandPipeline]) -> None:
    pipeline = make_pipeline()

    messages = await pipeline.handle_turn("what can you do for me")

    assert "did not recognise" in messages[0].content


async def test_classifier_builds_request_with_auth(
    make_pipeline: Callable[..., CommandPipeline],
    make_completion: Callable[..., Any],
    petstore_document: Document,
) -> None:
    """Understanding, then auth merge, then request building, in that order."""
    completion = make_completion(
        '{"action": "process_api_request", "userRequest": "show me sold pets", "nextStep": "build"}',
        json.dumps(
            {
                "endpoint": "/pet/findByStatus",
                "method": "GET",
                "queryParams": {"status": "sold"},
                "description": "Find sold pets",
                "missingInfo": ["authentication token"],
            }
        ),
        '{"authType": "apiKey", "headers": {"api_key": "abc"}, "queryParams": {}}',
    )
    pipeline = make_pipeline(completion=completion)
    pipeline.session.registry.set_current(petstore_document, "petstore")

    messages = await pipeline.handle_turn("show me the pets that were sold, my key is abc")

    preview = _json_block(messages)
    assert preview["url"] == "https://petstore.swagger.io/v2/pet/findByStatus"
    assert preview["params"] == {"status": "sold"}
    assert preview["headers"]["api_key"] == "abc"
    assert messages[0].content == "Find sold pets"
    assert len(completion.calls) == 3
    assert pipeline.session.pending is not None


async def test_classifier_routes_swagger_operation(
    make_pipeline: Callable[..., CommandPipeline],
    make_completion: Callable[..., Any],
    petstore_document: Document,
) -> None:
    completion = make_completion('{"action": "swagger_operation", "swaggerCommand": "swagger load petstore"}')
    pipeline = make_pipeline(completion=completion)
    pipeline.session.store.save("petstore", petstore_document)

    await pipeline.handle_turn("open my saved petstore api")

    assert pipeline.session.registry.current_name == "petstore"


async def test_classifier_informational_actions(
    make_pipeline: Callable[..., CommandPipeline], make_completion: Callable[..., Any]
) -> None:
    completion = make_completion(
        '{"action": "request_more_info", "nextStep": "Which user?", "missingInfo": ["user id"]}',
        '{"action": "provide_help"}',
        '{"action": "other_operation", "nextStep": "REST is an architectural style."}',
    )
    pipeline = make_pipeline(completion=completion)

    more = await pipeline.handle_turn("update the user")
    help_reply = await pipeline.handle_turn("how does this work")
    other = await pipeline.handle_turn("what is REST")

    assert more[0].content == "Which user?\n- user id"
    assert help_reply[0].content.startswith("# POSTAI command guide")
    assert other[0].content == "REST is an architectural style."


async def test_unparseable_classifier_reply(
    make_pipeline: Callable[..., CommandPipeline], make_completion: Callable[..., Any]
) -> None:
    pipeline = make_pipeline(completion=make_completion("I am not sure."))

    messages = await pipeline.handle_turn("do the thing")

    assert "could not determine what to do" in messages[0].content


async def test_collaborator_crash_never_escapes(
    make_pipeline: Callable[..., CommandPipeline], make_completion: Callable[..., Any]
) -> None:
    pipeline = make_pipeline(completion=make_completion(RuntimeError("model down")))

    messages = await pipeline.handle_turn("do the thing")

    assert "Something went wrong" in messages[0].content
    assert "model down" not in messages[0].content


async def test_transcript_and_turn_counter(make_pipeline: Callable[..., CommandPipeline]) -> None:
    pipeline = make_pipeline()

    assert await pipeline.handle_turn("   ") == []
    await pipeline.handle_turn("도움말")

    session = pipeline.session
    assert session.turn == 1
    assert [m.role for m in session.transcript] == ["user", "assistant"]
    assert session.transcript[1].content.startswith("# POSTAI command guide")


async def test_handlers_reply_to_turns_they_cannot_parse(make_pipeline: Callable[..., CommandPipeline]) -> None:
    pipeline = make_pipeline()
    session = pipeline.session

    base_url = await pipeline._set_base_url(session, "hello")
    method = await pipeline._method_command(session, "get me the users")
    understood = await pipeline._process_api_request(session, IntentDecision(action="process_api_request"))

    assert base_url[0].content == "Usage: set-base-url <url>"
    assert method[0].content.startswith("Usage: METHOD <path>")
    assert "did not recognise" in understood[0].content
    assert session.pending is None


def test_rule_priority(make_pipeline: Callable[..., CommandPipeline]) -> None:
    pipeline = make_pipeline()

    def rule_for(text: str) -> str | None:
        rule = pipeline.match_rule(text)
        return rule.name if rule is not None else None

    assert rule_for("set-base-url https://x.test") == "base_url"
    assert rule_for("실행") == "confirm"
    assert rule_for("Cancel") == "cancel"
    assert rule_for("GET https://x.test/swagger.json") == "method_command"
    assert rule_for("GET users") == "method_command"
    assert rule_for("swagger list") == "storage"
    assert rule_for("swagger https://x.test/swagger.json") == "document_load"
    assert rule_for("search pets") == "search"
    assert rule_for("help") == "help"
    assert rule_for("get me the users") is None
