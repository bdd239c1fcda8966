"""Command-line interface for copilot-client.

Spawns the agent, runs the handshake, performs one action, then disposes the
session and shuts the agent down. Meant for checking an agent install and
debugging the protocol, not for editing.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import shlex
import sys
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

from rich.console import Console
from rich.table import Table

from copilot_client import __version__
from copilot_client.config import Config, load_config
from copilot_client.errors import CopilotClientError
from copilot_client.logging import get_logger, setup_logging, verbosity_from_flags
from copilot_client.protocols import InMemoryVersionCache
from copilot_client.session.client import CopilotClient
from copilot_client.session.state import AuthStatus
from copilot_client.types import CompletionDocument, GetCompletionsParams, Position

console = Console(stderr=True)
out = Console()

_log = get_logger("cli")

Command = Callable[[CopilotClient, Config, argparse.Namespace], Awaitable[int]]


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="copilot-client",
        description="Drive a Copilot completion agent over stdio",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="More log output: -v adds agent messages, -vv adds wire traffic",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Log errors only and suppress progress output",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Config file path (default: ./copilot-client.yaml)",
    )
    parser.add_argument(
        "--agent",
        help="Agent command to spawn (e.g., 'node dist/agent.js --stdio')",
    )
    parser.add_argument(
        "--base-path",
        type=Path,
        help="Root directory that document paths are relative to",
    )

    subparsers = parser.add_subparsers(dest="command", help="Action")

    subparsers.add_parser("status", help="Run the handshake and report sign-in status")
    subparsers.add_parser("sign-in", help="Sign in with the device flow")
    subparsers.add_parser("sign-out", help="Sign out")

    complete_parser = subparsers.add_parser("complete", help="Request completions for a file")
    complete_parser.add_argument("file", type=Path, help="File to complete in")
    complete_parser.add_argument("--line", type=int, required=True, help="Zero-based line")
    complete_parser.add_argument(
        "--character", type=int, required=True, help="Zero-based character offset"
    )
    complete_parser.add_argument("--tab-size", type=int, default=4)

    return parser


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 1

    try:
        config = load_config(
            parsed.config,
            agent_command=shlex.split(parsed.agent) if parsed.agent else None,
            base_path=parsed.base_path.resolve() if parsed.base_path else None,
            verbose=verbosity_from_flags(parsed.verbose, parsed.quiet),
        )
    except (OSError, ValueError) as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        return 1

    setup_logging(config.logging)

    if not config.agent.command:
        console.print("[red]Error: no agent command (use --agent or the config file)[/red]")
        return 1

    return asyncio.run(run_command(config, parsed))


async def run_command(config: Config, parsed: argparse.Namespace) -> int:
    command = _COMMANDS[parsed.command]

    try:
        process = await spawn_agent(config)
    except OSError as e:
        console.print(f"[red]Error spawning agent: {e}[/red]")
        return 1

    client = CopilotClient.from_process(
        process,
        base_path=config.base_path,
        version_cache=InMemoryVersionCache(),
    )

    try:
        await asyncio.wait_for(client.setup(), timeout=config.request_timeout)
        if not parsed.quiet:
            console.print(f"[dim]Session {client.state.value}[/dim]")
        return await command(client, config, parsed)
    except (CopilotClientError, asyncio.TimeoutError) as e:
        console.print(f"[red]Error: {str(e) or type(e).__name__}[/red]")
        return 1
    finally:
        await client.dispose()
        await shutdown_agent(
            process,
            exit_timeout=config.shutdown.exit_timeout,
            terminate_timeout=config.shutdown.terminate_timeout,
        )


async def spawn_agent(config: Config) -> asyncio.subprocess.Process:
    args = config.agent.command
    env = {**os.environ, **config.agent.env}
    _log.debug("Spawning agent: %s", shlex.join(args))
    return await asyncio.create_subprocess_exec(
        args[0],
        *args[1:],
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=sys.stderr,
        env=env,
    )


async def shutdown_agent(
    process: asyncio.subprocess.Process,
    exit_timeout: float = 2.0,
    terminate_timeout: float = 3.0,
) -> None:
    """Wait for the agent to exit on its own, then terminate, then kill."""
    if process.returncode is not None:
        return

    try:
        await asyncio.wait_for(process.wait(), timeout=exit_timeout)
        return
    except asyncio.TimeoutError:
        pass

    _log.debug("Agent did not exit, terminating")
    process.terminate()
    try:
        await asyncio.wait_for(process.wait(), timeout=terminate_timeout)
        return
    except asyncio.TimeoutError:
        pass

    process.kill()
    await process.wait()


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------


async def _status(client: CopilotClient, config: Config, parsed: argparse.Namespace) -> int:
    status = await asyncio.wait_for(client.check_status(), timeout=config.request_timeout)

    table = Table(title="Copilot agent", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    server_info = client.initialize_result.server_info if client.initialize_result else None
    if server_info:
        table.add_row("Agent", f"{server_info.name} {server_info.version}")
    table.add_row("Session", client.state.value)
    table.add_row("Status", status.status)
    table.add_row("Auth", client.auth_state.status.value)
    table.add_row("User", status.user or "-")
    out.print(table)
    return 0


async def _sign_in(client: CopilotClient, config: Config, parsed: argparse.Namespace) -> int:
    result = await asyncio.wait_for(client.initiate_sign_in(), timeout=config.request_timeout)
    if result.status == "AlreadySignedIn":
        out.print(f"Already signed in as [bold]{result.user}[/bold]")
        return 0

    out.print(f"Open [link={result.verification_uri}]{result.verification_uri}[/link]")
    out.print(f"and enter the code [bold yellow]{result.user_code}[/bold yellow]")
    await asyncio.to_thread(console.input, "Press Enter once you have authorized... ")

    confirmed = await client.confirm_sign_in(result.user_code or "")
    if client.auth_state.status is AuthStatus.SIGNED_IN:
        out.print(f"[green]Signed in as {confirmed.user}[/green]")
        return 0
    out.print(f"[red]Sign-in not completed: {confirmed.status}[/red]")
    return 1


async def _sign_out(client: CopilotClient, config: Config, parsed: argparse.Namespace) -> int:
    result = await asyncio.wait_for(client.sign_out(), timeout=config.request_timeout)
    out.print(f"Signed out ({result.status})")
    return 0


async def _complete(client: CopilotClient, config: Config, parsed: argparse.Namespace) -> int:
    file_path: Path = parsed.file.resolve()
    try:
        text = file_path.read_text(encoding="utf-8")
        relative = file_path.relative_to(config.base_path).as_posix()
    except (OSError, ValueError) as e:
        console.print(f"[red]Cannot read {parsed.file}: {e}[/red]")
        return 1

    if not await client.sync_document(relative, text):
        console.print("[yellow]Document sync failed; completions may be stale[/yellow]")

    mirror = client.documents.mirror(client.documents.uri_for(relative))
    params = GetCompletionsParams(
        doc=CompletionDocument(
            uri=client.documents.uri_for(relative),
            position=Position(line=parsed.line, character=parsed.character),
            version=mirror.version if mirror else 0,
            tab_size=parsed.tab_size,
            indent_size=parsed.tab_size,
            relative_path=relative,
        )
    )
    try:
        completions = await asyncio.wait_for(
            client.completion(params), timeout=config.request_timeout
        )
    except asyncio.TimeoutError:
        console.print("[red]Timed out waiting for completions[/red]")
        return 1

    if not completions.completions:
        console.print("[dim]No completions[/dim]")
        return 0
    for index, completion in enumerate(completions.completions, start=1):
        out.rule(f"completion {index}")
        out.print(completion.display_text or completion.text, markup=False, highlight=False)
    return 0


_COMMANDS: dict[str, Command] = {
    "status": _status,
    "sign-in": _sign_in,
    "sign-out": _sign_out,
    "complete": _complete,
}
