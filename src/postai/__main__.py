"""POSTAI CLI entry point — supports `chat`, `ask`, `inspect`, and `docs` commands."""

from __future__ import annotations

import argparse
import asyncio
import sys

from postai.config import PostAIConfig, load_config
from postai.errors import PostAIError
from postai.models import ChatMessage
from postai.utils.logging import get_logger, setup_logging

EXIT_WORDS = {"exit", "quit", "종료"}


def _build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="postai",
        description="POSTAI — explore and call HTTP APIs described by Swagger/OpenAPI documents",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # chat subcommand
    chat_parser = subparsers.add_parser("chat", help="Start an interactive session")
    chat_parser.add_argument(
        "--no-llm",
        action="store_true",
        help="Disable the language model; only literal commands are understood",
    )

    # ask subcommand
    ask_parser = subparsers.add_parser("ask", help="Run one or more turns non-interactively")
    ask_parser.add_argument("turns", nargs="+", help="Turns to process in order, e.g. \"GET /users\" execute")
    ask_parser.add_argument(
        "--no-llm",
        action="store_true",
        help="Disable the language model; only literal commands are understood",
    )

    # inspect subcommand
    inspect_parser = subparsers.add_parser("inspect", help="Parse an API document and list its endpoints")
    inspect_parser.add_argument("source", help="URL or file path of a Swagger/OpenAPI document")

    # docs subcommand
    subparsers.add_parser("docs", help="List saved API documents")

    return parser


def render_message(message: ChatMessage) -> str:
    """Format one assistant message for the terminal."""
    if message.code_block:
        return f"```{message.code_language or ''}\n{message.content}\n```"
    return message.content


def _print_messages(messages: list[ChatMessage]) -> None:
    for message in messages:
        print(render_message(message))
    if messages:
        print()


def _make_pipeline(config: PostAIConfig, no_llm: bool):
    from postai.pipeline.pipeline import CommandPipeline  # noqa: PLC0415
    from postai.pipeline.session import Session  # noqa: PLC0415

    return CommandPipeline(Session.from_config(config, use_llm=not no_llm))


async def _cmd_chat(args: argparse.Namespace) -> int:
    """Run the interactive loop until exit/quit or end of input.

    Args:
        args: Parsed CLI arguments.

    Returns:
        Exit code.
    """
    config = load_config()
    pipeline = _make_pipeline(config, args.no_llm)
    print("POSTAI ready. Type help for commands, exit to leave.\n")

    while True:
        try:
            line = await asyncio.to_thread(input, "you> ")
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if line.strip().lower() in EXIT_WORDS:
            break
        _print_messages(await pipeline.handle_turn(line))
    return 0


async def _cmd_ask(args: argparse.Namespace) -> int:
    """Process each given turn in order and print the replies.

    Args:
        args: Parsed CLI arguments.

    Returns:
        Exit code.
    """
    config = load_config()
    pipeline = _make_pipeline(config, args.no_llm)
    for turn in args.turns:
        _print_messages(await pipeline.handle_turn(turn))
    return 0


async def _cmd_inspect(args: argparse.Namespace) -> int:
    """Parse a document and print its summary and endpoint table.

    Args:
        args: Parsed CLI arguments.

    Returns:
        Exit code (1 when the document cannot be parsed).
    """
    from postai.parser.swagger_parser import parse_document  # noqa: PLC0415
    from postai.pipeline.commands import document_summary  # noqa: PLC0415
    from postai.presenter import markdown_table  # noqa: PLC0415

    config = load_config()
    logger = get_logger(__name__)

    try:
        document = await parse_document(args.source, timeout_seconds=config.fetch_timeout_seconds)
    except PostAIError as exc:
        logger.warning("inspect_failed", source=args.source, error=str(exc))
        print(f"Could not parse {args.source}: {exc}", file=sys.stderr)
        return 1

    print(document_summary(document))
    rows = [[ep.method, ep.path, ep.summary, ep.operation_id or ""] for ep in document.endpoints]
    if rows:
        print(markdown_table(["Method", "Path", "Summary", "Operation ID"], rows, config.table_cell_width))
    return 0


async def _cmd_docs(args: argparse.Namespace) -> int:
    """List saved documents.

    Args:
        args: Parsed CLI arguments.

    Returns:
        Exit code.
    """
    from postai.runtime.store import DocumentStore  # noqa: PLC0415

    config = load_config()
    store = DocumentStore(config.storage_dir)
    names = store.list()
    if not names:
        print(f"No saved documents in {store.directory}")
        return 0
    for name in names:
        print(name)
    return 0


def main() -> None:
    """CLI entry point invoked by `postai` script or `python -m postai`."""
    parser = _build_parser()
    args = parser.parse_args()

    # Load config early for log level
    try:
        config = load_config()
        setup_logging("DEBUG" if config.debug else config.log_level)
    except Exception:  # noqa: BLE001
        setup_logging("WARNING")

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    command_map = {
        "chat": _cmd_chat,
        "ask": _cmd_ask,
        "inspect": _cmd_inspect,
        "docs": _cmd_docs,
    }

    handler = command_map.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    exit_code = asyncio.run(handler(args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
