"""Text-completion backed helpers: intent classification, request understanding, auth merge."""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from postai.errors import ClassificationError
from postai.llm import TextCompletion
from postai.models import ApiUnderstanding, AuthInfo, Document, IntentDecision, SearchTerms
from postai.prompts import render_prompt
from postai.utils.jsonextract import extract_json_object
from postai.utils.logging import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Endpoints listed in the request-understanding prompt
_PROMPT_ENDPOINT_LIMIT = 80

_AUTH_MARKERS = ("auth", "인증", "token", "토큰", "api key", "apikey", "credential")


async def _ask_json(completion: TextCompletion, prompt: str, model: type[ModelT], purpose: str) -> ModelT:
    """Send one prompt and validate the JSON object in the reply.

    Raises:
        ClassificationError: When the reply carries no object or the object has the wrong shape.
    """
    reply = await completion.invoke([{"role": "user", "content": prompt}])
    payload = extract_json_object(reply)
    if payload is None:
        logger.warning("llm_reply_unparseable", purpose=purpose, reply=reply[:200])
        raise ClassificationError(f"No JSON object in the {purpose} reply", raw_reply=reply)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.warning("llm_reply_invalid", purpose=purpose, errors=exc.error_count())
        raise ClassificationError(f"Unexpected {purpose} reply shape", raw_reply=reply) from exc


async def classify_intent(
    completion: TextCompletion,
    user_request: str,
    current_document: str | None = None,
    loaded_names: list[str] | None = None,
    history: str = "",
) -> IntentDecision:
    """Decide which action a free-form turn calls for.

    Args:
        completion: Text-completion collaborator.
        user_request: The raw turn.
        current_document: Name of the current document, if any.
        loaded_names: Names of all loaded documents.
        history: Recent transcript lines.

    Returns:
        Parsed IntentDecision.

    Raises:
        ClassificationError: When the reply cannot be parsed.
    """
    prompt = render_prompt(
        "intent_classifier",
        current_document=current_document,
        loaded_names=loaded_names or [],
        history=history,
        user_request=user_request,
    )
    decision = await _ask_json(completion, prompt, IntentDecision, "intent classifier")
    logger.info("intent_classified", action=decision.action)
    return decision


async def understand_request(
    completion: TextCompletion,
    user_request: str,
    document: Document | None = None,
) -> ApiUnderstanding:
    """Turn a natural-language API request into endpoint, method and parameters."""
    endpoints = document.endpoints[:_PROMPT_ENDPOINT_LIMIT] if document is not None else []
    prompt = render_prompt("api_understanding", document=document, endpoints=endpoints)
    prompt = f"{prompt}\n\nUser request: {user_request}"
    understanding = await _ask_json(completion, prompt, ApiUnderstanding, "request understanding")
    logger.info("request_understood", method=understanding.method, endpoint=understanding.endpoint)
    return understanding


def needs_auth(missing_info: list[str]) -> bool:
    """True when any missing-info note mentions credentials."""
    return any(marker in item.lower() for item in missing_info for marker in _AUTH_MARKERS)


async def resolve_auth(completion: TextCompletion, understanding: ApiUnderstanding, user_request: str) -> AuthInfo:
    """Ask for authentication headers and query values for an understood request."""
    api_request: dict[str, Any] = understanding.model_dump(by_alias=True)
    api_request["userRequest"] = user_request
    prompt = render_prompt("auth_management", api_request=json.dumps(api_request, ensure_ascii=False, indent=2))
    auth = await _ask_json(completion, prompt, AuthInfo, "authentication")
    logger.info("auth_resolved", auth_type=auth.auth_type, headers=sorted(auth.headers))
    return auth


async def extract_search_terms(completion: TextCompletion, query: str) -> SearchTerms:
    """Pull search keywords and a field scope out of natural phrasing.

    Falls back to the raw query over all fields when the reply is unusable or the
    collaborator fails.
    """
    try:
        return await _ask_json(completion, render_prompt("search_terms", query=query), SearchTerms, "search terms")
    except ClassificationError:
        return SearchTerms(search_terms=query, fields=["all"])
    except Exception as exc:  # noqa: BLE001
        logger.warning("search_terms_failed", query=query, error=str(exc))
        return SearchTerms(search_terms=query, fields=["all"])
