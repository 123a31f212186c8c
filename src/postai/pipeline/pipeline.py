"""Command/intent pipeline — classifies each turn with ordered rules and dispatches it."""

from __future__ import annotations

import json
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from postai.errors import (
    ClassificationError,
    MissingBaseUrlError,
    NotFoundError,
    ParseError,
    PostAIError,
    StorageError,
    TransportError,
    UnsupportedSpecError,
)
from postai.models import ChatMessage, IntentDecision, MissingInfoReport, PendingRequest, assistant
from postai.pipeline import agents, commands
from postai.pipeline.session import Session
from postai.request.builder import parse_command
from postai.runtime.transport import run_request
from postai.utils.logging import bind_turn, get_logger

logger = get_logger(__name__)

BASE_URL_RE = re.compile(r"^(?:set-base-url|set-baseurl|baseurl)\s+(\S+)\s*$", re.IGNORECASE)
CONFIRM_RE = re.compile(r"^(?:실행|execute)[.!]?$", re.IGNORECASE)
CANCEL_RE = re.compile(r"^(?:취소|cancel)[.!]?$", re.IGNORECASE)
HELP_RE = re.compile(r"^(?:help|도움말)\b", re.IGNORECASE)

CONFIRM_PROMPT = "Type '실행' or 'execute' to send this request, or '취소' or 'cancel' to discard it."
UNRECOGNISED_REPLY = "I did not recognise that command. Type help to see what I can do."

Handler = Callable[[Session, str], Awaitable[list[ChatMessage]]]
Predicate = Callable[[str], bool]


@dataclass(frozen=True)
class Rule:
    """One (predicate, handler) pair in the dispatch table."""

    name: str
    predicate: Predicate
    handler: Handler


def _user_message_for(exc: PostAIError) -> str:
    """Plain-language text plus a next step for a collaborator failure."""
    if isinstance(exc, UnsupportedSpecError):
        return f"{exc}. Only Swagger 2.0 and OpenAPI 3.x documents can be loaded."
    if isinstance(exc, ParseError):
        return f"Could not load the API document: {exc}. Check the URL and that it serves JSON or YAML."
    if isinstance(exc, NotFoundError):
        return f"{exc}. List saved documents with: swagger list"
    if isinstance(exc, MissingBaseUrlError):
        return f"{exc}. Set one with: set-base-url <url>"
    if isinstance(exc, StorageError):
        return f"{exc}. Check that the storage directory is writable."
    if isinstance(exc, TransportError):
        return f"The request could not be sent: {exc.message} [{exc.code}]"
    if isinstance(exc, ClassificationError):
        return "I could not determine what to do with that. Try an explicit command, or type help."
    return f"{exc}"


def pending_preview(request: PendingRequest) -> list[ChatMessage]:
    """Messages showing a built request and asking for confirmation."""
    messages = [
        assistant("Request prepared:"),
        assistant(json.dumps(request.preview(), indent=2, ensure_ascii=False), code_language="json"),
    ]
    if request.missing:
        lines = "\n".join(f"- {m.describe()}" for m in request.missing)
        messages.append(assistant(f"Required parameters not supplied (the request can still be sent):\n{lines}"))
    messages.append(assistant(CONFIRM_PROMPT))
    return messages


class CommandPipeline:
    """Turn processor for one session.

    Rules are evaluated in priority order; the first matching predicate owns the turn.
    Every turn except confirm/cancel clears the pending request before dispatch.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.rules: list[Rule] = [
            Rule("base_url", lambda t: BASE_URL_RE.match(t) is not None, self._set_base_url),
            Rule("confirm", lambda t: CONFIRM_RE.match(t) is not None, self._confirm),
            Rule("cancel", lambda t: CANCEL_RE.match(t) is not None, self._cancel),
            Rule("method_command", lambda t: parse_command(t) is not None, self._method_command),
            Rule("storage", lambda t: commands.STORAGE_RE.match(t) is not None, commands.handle_storage),
            Rule("document_load", commands.is_document_load, commands.handle_document_load),
            Rule("search", lambda t: commands.SEARCH_RE.match(t) is not None, commands.handle_search),
            Rule("help", lambda t: HELP_RE.match(t) is not None, self._help),
        ]

    def match_rule(self, text: str) -> Rule | None:
        """First rule whose predicate accepts the turn, or None for the classifier fallback."""
        for rule in self.rules:
            if rule.predicate(text):
                return rule
        return None

    async def handle_turn(self, text: str) -> list[ChatMessage]:
        """Process one user turn.

        Args:
            text: Raw user input.

        Returns:
            Assistant messages for the turn. Never raises.
        """
        text = text.strip()
        if not text:
            return []

        session = self.session
        session.turn += 1
        bind_turn(session.turn)
        session.transcript.append(ChatMessage(role="user", content=text))

        rule = self.match_rule(text)
        rule_name = rule.name if rule is not None else "classifier"
        if rule_name not in ("confirm", "cancel") and session.pending is not None:
            logger.info("pending_request_discarded", rule=rule_name)
            session.pending = None

        logger.info("turn_started", rule=rule_name)
        handler = rule.handler if rule is not None else self._classify
        try:
            messages = await handler(session, text)
        except PostAIError as exc:
            logger.warning("turn_failed", rule=rule_name, error_type=type(exc).__name__, error=str(exc))
            messages = [assistant(_user_message_for(exc))]
        except Exception:  # noqa: BLE001
            logger.exception("turn_crashed", rule=rule_name)
            messages = [assistant("Something went wrong while handling that request. Details were logged.")]

        session.transcript.extend(messages)
        return messages

    # -- rule handlers -----------------------------------------------------

    async def _set_base_url(self, session: Session, text: str) -> list[ChatMessage]:
        match = BASE_URL_RE.match(text)
        if match is None:
            return [assistant("Usage: set-base-url <url>")]
        url = match.group(1)
        session.registry.set_base_url_override(url)
        return [assistant(f"Base URL set to {url}. Relative paths now resolve against it.")]

    async def _confirm(self, session: Session, text: str) -> list[ChatMessage]:
        request = session.pending
        if request is None:
            return [assistant("There is no prepared request to execute. Build one first, e.g. GET /users")]
        session.pending = None

        result = await run_request(session.transport, request)
        presentation = session.presenter.present(result)
        logger.info("request_executed", status=result.status, status_code=result.status_code, mode=presentation.mode)

        messages = [assistant(presentation.status_summary)]
        if presentation.language is not None:
            messages.append(assistant(presentation.content, code_language=presentation.language))
        else:
            messages.append(assistant(presentation.content, code_block=presentation.mode in ("json", "summary")))
        if presentation.additional_info:
            messages.append(assistant(presentation.additional_info))
        return messages

    async def _cancel(self, session: Session, text: str) -> list[ChatMessage]:
        if session.pending is None:
            return [assistant("There is no prepared request to cancel.")]
        session.pending = None
        return [assistant("Request cancelled.")]

    async def _method_command(self, session: Session, text: str) -> list[ChatMessage]:
        command = parse_command(text)
        if command is None:
            return [assistant("Usage: METHOD <path> [json-body | key=value ...]")]
        result = session.builder.build_from_command(
            command.method,
            command.raw_path,
            command.raw_params,
            document=session.registry.current,
            base_url_override=session.registry.base_url_override,
        )
        return self._stage(session, result)

    async def _help(self, session: Session, text: str) -> list[ChatMessage]:
        return commands.help_messages()

    def _stage(self, session: Session, result: PendingRequest | MissingInfoReport) -> list[ChatMessage]:
        """Fill the pending slot with a built request, or relay the builder's guidance."""
        if isinstance(result, MissingInfoReport):
            return [assistant(result.render())]
        session.pending = result
        return pending_preview(result)

    # -- classifier fallback -----------------------------------------------

    async def _classify(self, session: Session, text: str) -> list[ChatMessage]:
        if session.completion is None:
            return [assistant(UNRECOGNISED_REPLY)]

        decision = await agents.classify_intent(
            session.completion,
            text,
            current_document=session.registry.current_name,
            loaded_names=session.registry.list_names(),
            history=session.history_text(),
        )

        if decision.action == "process_api_request":
            return await self._process_api_request(session, decision)
        if decision.action == "request_more_info":
            lines = [decision.next_step or "I need more details to build that request."]
            lines.extend(f"- {item}" for item in decision.missing_info)
            return [assistant("\n".join(lines))]
        if decision.action == "provide_help":
            return [assistant(decision.help_message)] if decision.help_message else commands.help_messages()
        if decision.action == "swagger_operation":
            command = (decision.swagger_command or "").strip()
            if commands.STORAGE_RE.match(command):
                return await commands.handle_storage(session, command)
            if commands.is_document_load(command):
                return await commands.handle_document_load(session, command)
            return [assistant(decision.next_step or commands.STORAGE_USAGE)]
        return [assistant(decision.next_step or "I could not determine what to do with that. Type help.")]

    async def _process_api_request(self, session: Session, decision: IntentDecision) -> list[ChatMessage]:
        """API understanding, then optional auth merge, then request building."""
        if session.completion is None:
            return [assistant(UNRECOGNISED_REPLY)]
        user_request = decision.user_request or (session.transcript[-1].content if session.transcript else "")
        document = session.registry.current
        understanding = await agents.understand_request(session.completion, user_request, document)

        headers = dict(understanding.headers)
        query_params = dict(understanding.query_params)
        notes: list[ChatMessage] = []
        if agents.needs_auth(understanding.missing_info):
            auth = await agents.resolve_auth(session.completion, understanding, user_request)
            headers.update(auth.headers)
            query_params.update(auth.query_params)
            if auth.security_advice:
                notes.append(assistant(auth.security_advice))

        result = session.builder.build_from_command(
            understanding.method,
            understanding.endpoint,
            document=document,
            base_url_override=session.registry.base_url_override,
            headers=headers,
            query_params=query_params,
            body=understanding.body,
        )
        intro = [assistant(understanding.description)] if understanding.description else []
        return intro + notes + self._stage(session, result)
