"""Command-line interface for the Antigravity bridge.

Commands:
- antigravity-bridge convert REQUEST.json
- antigravity-bridge inspect-stream FILE.sse
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import AsyncIterator, List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from antigravity_bridge.config import BridgeConfig, ConfigManager
from antigravity_bridge.errors import BridgeError
from antigravity_bridge.models import AccountContext
from antigravity_bridge.request import build_request_body
from antigravity_bridge.session import AdapterSession
from antigravity_bridge.signatures import short_signature
from antigravity_bridge.stream import STREAM_READ_CHUNK_SIZE, StreamInterceptor

console = Console()
err_console = Console(stderr=True)

SAMPLING_KEYS = ("temperature", "top_p", "top_k", "max_tokens")


def setup_logging(level: str) -> None:
    """Route log records to stderr through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="antigravity-bridge",
        description="Convert OpenAI chat requests to Antigravity and inspect signature streams",
    )
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["debug", "info", "warning", "error"],
        help="Log level (defaults to the configured level)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    convert_parser = subparsers.add_parser("convert", help="Print the Antigravity envelope for a request")
    convert_parser.add_argument("request", help="Chat-completion request body (JSON file)")
    convert_parser.add_argument("--model", default=None, help="Override the request's model")
    convert_parser.add_argument("--project", default="", help="Upstream project id")
    convert_parser.add_argument("--session", default="", help="Upstream session id")

    inspect_parser = subparsers.add_parser(
        "inspect-stream", help="Show the signatures captured from a saved SSE stream"
    )
    inspect_parser.add_argument("stream", help="Captured SSE body")

    return parser


async def handle_convert(args: argparse.Namespace, config: BridgeConfig) -> int:
    try:
        request = json.loads(Path(args.request).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error:[/red] cannot read request {args.request}: {e}")
        return 1

    model = args.model or request.get("model")
    if not model:
        console.print("[red]Error:[/red] no model given (use --model or set it in the request)")
        return 1

    parameters = {key: request[key] for key in SAMPLING_KEYS if key in request}
    account = AccountContext(project_id=args.project, session_id=args.session)
    session = AdapterSession(config)

    try:
        body = await build_request_body(
            request.get("messages") or [],
            model,
            parameters,
            request.get("tools"),
            account,
            session,
        )
    except BridgeError as e:
        console.print(f"[red]Conversion failed:[/red] {e}")
        return 1

    print(json.dumps(body, indent=2, ensure_ascii=False))
    return 0


async def _read_chunks(path: Path) -> AsyncIterator[bytes]:
    with path.open("rb") as f:
        while True:
            chunk = f.read(STREAM_READ_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


async def handle_inspect_stream(args: argparse.Namespace, config: BridgeConfig) -> int:
    path = Path(args.stream)
    if not path.exists():
        console.print(f"[red]Error:[/red] {path} does not exist")
        return 1

    interceptor = StreamInterceptor(AdapterSession(config))
    total = 0
    async for chunk in interceptor.intercept(_read_chunks(path), timeout=config.timeout):
        total += len(chunk)

    if not interceptor.captured:
        console.print(Panel("No signatures found.", title="Signatures", border_style="yellow"))
        return 0

    table = Table(title=f"Captured Signatures ({total} bytes read)")
    table.add_column("Kind", style="cyan")
    table.add_column("Fingerprint")
    table.add_column("Signature", style="green")
    for captured in interceptor.captured:
        table.add_row(captured.kind, captured.fingerprint or "-", short_signature(captured.signature))
    console.print(table)
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = ConfigManager(Path(args.config) if args.config else None).load()
    setup_logging(args.log_level or config.log_level)

    if args.command == "convert":
        return await handle_convert(args, config)
    if args.command == "inspect-stream":
        return await handle_inspect_stream(args, config)

    parser.print_help()
    return 1


def run():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    run()
