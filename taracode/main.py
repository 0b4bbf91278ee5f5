"""
taracode: coding assistant for your terminal, backed by a local LLM server.

Command: taracode [run] | taracode ask MESSAGE...
"""

import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape

from . import __version__
from .assistant import Assistant, read_project_context
from .config import HISTORY_FILE, Config
from .errors import ProviderError, StorageError
from .logger import get_logger, setup_logger
from .provider import Provider, create_provider, select_model
from .rendering import ConsoleProgress, NullProgress, render_error, render_warning
from .storage import StorageManager
from .theme import DIM, ERROR, SUCCESS, WARN
from .tools import ToolRegistry

console = Console()
_log = get_logger(__name__)

MISSING_HOST_HELP = """\
Error: LLM server host not found.

Set it via:
  - Environment variable: export TARACODE_HOST=http://localhost:8000
  - Config file: ~/.taracode/config.yaml (host: http://localhost:8000)
  - Command flag: --host http://localhost:8000"""


def _common_options(func):
    options = [
        click.option("--config", "config_file", default=None, help="Config file path"),
        click.option("--host", default=None, help="LLM server URL"),
        click.option("--key", "api_key", default=None, help="API key for the server"),
        click.option("--model", "-m", default=None, help="Model name (auto-detected if unset)"),
        click.option("--vendor", default=None, help="vllm, ollama or llama.cpp"),
        click.option("--no-stream", is_flag=True, help="Disable streaming responses"),
        click.option("--no-spinner", is_flag=True, help="Disable the progress spinner"),
        click.option("--verbose", "-v", is_flag=True, help="Verbose output"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group(invoke_without_command=True)
@_common_options
@click.version_option(__version__, prog_name="taracode")
@click.pass_context
def cli(ctx, **flags):
    """taracode: coding assistant for your terminal."""
    ctx.obj = flags
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


def load_config(flags: dict) -> Config:
    flags = dict(flags)
    config = Config.load(flags.pop("config_file", None))
    config.override(**flags)
    setup_logger("taracode", verbose=config.verbose)
    return config


def connect(config: Config) -> Provider:
    """Create the provider and settle on a model; raises ProviderError."""
    provider = create_provider(config.host, config.vendor, config.api_key)

    detected, detect_error = None, None
    try:
        detected = provider.detect_models_with_retry(
            notify=lambda msg: console.print(f"[{DIM}]{escape(msg)}[/{DIM}]"))
    except Exception as e:
        detect_error = e
        _log.info("Model detection failed: %s", e)

    model, message, is_warning = select_model(config.model, detected, detect_error)
    if is_warning:
        render_warning(console, message)
    else:
        console.print(f"[{DIM}]{message}[/{DIM}]")
    provider.set_model(model)
    return provider


def build_assistant(config: Config, provider: Provider) -> Assistant:
    working_dir = config.project_root
    storage: Optional[StorageManager] = None
    try:
        storage = StorageManager(working_dir)
    except (OSError, StorageError) as e:
        render_warning(console, f"Session storage disabled: {e}")

    registry = ToolRegistry(working_dir, config.blocked_commands, config.command_timeout)
    progress = ConsoleProgress(console) if config.spinner else NullProgress()
    return Assistant(
        client=provider.create_client(),
        registry=registry,
        working_dir=working_dir,
        storage=storage,
        provider=provider,
        streaming=config.streaming,
        progress=progress,
        console=console,
        max_iterations=config.max_iterations,
        response_timeout=config.response_timeout,
    )


def _startup(flags: dict) -> tuple:
    config = load_config(flags)
    if not config.host:
        console.print(MISSING_HOST_HELP, style=ERROR, highlight=False)
        sys.exit(1)
    try:
        provider = connect(config)
    except ProviderError as e:
        console.print(f"[{ERROR}]Error: {escape(str(e))}[/{ERROR}]", highlight=False)
        sys.exit(1)
    return config, provider, build_assistant(config, provider)


def _session_ids(assistant: Assistant) -> list:
    if assistant.storage is None:
        return []
    return [meta.id for meta in assistant.list_sessions()]


@cli.command()
@click.pass_obj
def run(flags):
    """Start an interactive session."""
    from .ui import PTK_STYLE, SlashCommandCompleter, build_banner, make_prompt_html, render_startup

    console.print(build_banner(__version__))
    os.environ.setdefault("PROMPT_TOOLKIT_NO_CPR", "1")
    config, provider, assistant = _startup(flags or {})

    render_startup(
        console,
        has_project_context=read_project_context(config.project_root) is not None,
        provider_info=provider.info,
        session=assistant.session,
    )

    from .commands import handle_command
    from prompt_toolkit import PromptSession
    from prompt_toolkit.history import FileHistory
    from prompt_toolkit.key_binding import KeyBindings

    HISTORY_FILE.parent.mkdir(parents=True, exist_ok=True)
    session = PromptSession(
        history=FileHistory(str(HISTORY_FILE)),
        completer=SlashCommandCompleter(session_ids=lambda: _session_ids(assistant)),
        complete_while_typing=True,
        style=PTK_STYLE,
    )

    repl_kb = KeyBindings()

    @repl_kb.add("escape", "enter")
    def _newline(event):
        event.current_buffer.insert_text("\n")

    while True:
        try:
            user_input = session.prompt(make_prompt_html(), key_bindings=repl_kb).strip()
        except (EOFError, KeyboardInterrupt):
            console.print(f"\n[{DIM}]Goodbye![/{DIM}]")
            break

        if not user_input:
            continue
        if user_input.lower() in ("exit", "quit"):
            console.print(f"[{DIM}]Goodbye![/{DIM}]")
            break

        if user_input.startswith("/"):
            if handle_command(user_input, console=console, assistant=assistant,
                              config=config) == "quit":
                break
            continue

        try:
            assistant.process_message(user_input)
        except KeyboardInterrupt:
            console.print(f"\n[{WARN}]  Interrupted.[/{WARN}]")
        except Exception as error:
            render_error(console, str(error))
            if config.verbose:
                import traceback

                console.print(f"[{DIM}]{escape(traceback.format_exc())}[/{DIM}]")


@cli.command()
@click.argument("message", nargs=-1, required=True)
@click.pass_obj
def ask(flags, message):
    """Run a single query and exit."""
    _, _, assistant = _startup(flags or {})
    try:
        assistant.process_message(" ".join(message))
    except ConnectionError as e:
        console.print(f"[{ERROR}]Error: {escape(str(e))}[/{ERROR}]", highlight=False)
        sys.exit(1)


@cli.command("config")
@click.pass_obj
def config_cmd(flags):
    """Show the effective configuration."""
    from rich.table import Table

    config = load_config(flags or {})
    table = Table(show_header=False, box=None, padding=(0, 2))
    for key, value in config.summary().items():
        table.add_row(f"[bold]{key}[/bold]", str(value))
    console.print(table)
    initialized = (Path(config.project_root) / "TARACODE.md").exists()
    mark = f"[{SUCCESS}]✓[/{SUCCESS}]" if initialized else f"[{WARN}]![/{WARN}]"
    console.print(f"{mark} TARACODE.md {'present' if initialized else 'missing (run /init)'}")


if __name__ == "__main__":
    cli()
