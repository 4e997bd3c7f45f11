"""
CLI entry point for symbiosis, a memory-augmented conversational agent.
"""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

try:
    from importlib.metadata import version as pkg_version

    _version = pkg_version("symbiosis")
except Exception:
    _version = "0.1.0"

from symbiosis.core.config import API_KEY, MODEL, STORE_URL, ConfigManager
from symbiosis.core.llm import InferenceAuthError
from symbiosis.core.pipeline import ConversationPipeline
from symbiosis.core.session import SessionContext, bootstrap_session
from symbiosis.models.memory import Reply
from symbiosis.models.settings import SettingsError, SymbiosisSettings, load_settings

console = Console()
console_err = Console(stderr=True)

MOOD_STYLES = {
    "AFFECTIONATE": "magenta",
    "JOYFUL": "green",
    "CURIOUS": "yellow",
    "QUESTION": "yellow",
    "SAD": "blue",
    "DISLIKE": "red",
    "CRYPTIC": "cyan",
    "NEUTRAL": "white",
}


# =============================================================================
# Root CLI Group
# =============================================================================


@click.group()
@click.version_option(version=_version, prog_name="symbiosis")
@click.option("--debug", is_flag=True, hidden=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings YAML (default: ./symbiosis.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, config_path: Path | None):
    """
    Symbiosis: a conversational agent with long-term memory.

    \b
        symbiosis chat               # Interactive companion
        symbiosis chat --director    # Archive director mode
        symbiosis ask "..."          # Single turn
        symbiosis config set KEY     # Store a credential
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = config_path

    if debug:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="[%(levelname)s] %(name)s: %(message)s")
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def _settings(ctx: click.Context) -> SymbiosisSettings:
    try:
        return load_settings(ctx.obj.get("config_path"))
    except SettingsError as e:
        console_err.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def build_pipeline(settings: SymbiosisSettings, model: str | None = None) -> ConversationPipeline:
    """Wire a pipeline from stored config and settings."""
    config_mgr = ConfigManager()
    api_key = config_mgr.get(API_KEY)
    if not api_key:
        console_err.print(f"[red]Error:[/red] {API_KEY} is not set")
        console_err.print(f"Run [cyan]symbiosis config set {API_KEY}[/cyan] first.")
        sys.exit(1)

    store_url = config_mgr.get(STORE_URL)
    if not store_url:
        console_err.print("[yellow]No store configured; memory is disabled for this session.[/yellow]")

    return ConversationPipeline.from_settings(
        api_key,
        settings=settings,
        store_url=store_url,
        model=model or config_mgr.get(MODEL),
    )


def _mood_style(mood: str) -> str:
    return MOOD_STYLES.get(mood, "white")


def render_reply(reply: Reply) -> None:
    style = _mood_style(reply.mood)
    console.print(
        Panel(
            escape(reply.response),
            title=f"[{style}]{escape(reply.mood)}[/{style}]",
            title_align="left",
            border_style=style,
        )
    )

    if reply.roots:
        tree = Tree("[bold]memory[/bold]")
        for root in reply.roots:
            root_node = tree.add(f"[{_mood_style(root.mood)}]{escape(root.label or '')}[/]")
            for branch in root.branches:
                branch_node = root_node.add(f"[{_mood_style(branch.mood)}]{escape(branch.label or '')}[/]")
                for leaf in branch.leaves:
                    branch_node.add(f"[{_mood_style(leaf.mood)}]{escape(leaf.text or '')}[/]")
        console.print(tree)

    if reply.director_action == "SHOW_DECKS":
        console.print(f"[dim]decks:[/dim] {', '.join(escape(k) for k in reply.deck_keywords or [])}")
    elif reply.director_action == "PLAY_MEDIA" and reply.files:
        table = Table(title="Archive", show_lines=False)
        table.add_column("File", style="cyan")
        table.add_column("Description")
        for f in reply.files:
            table.add_row(f.name, f.description or "")
        console.print(table)


def _auth_failure(e: InferenceAuthError) -> None:
    console_err.print(f"[red]Error:[/red] {e}")
    sys.exit(1)


# =============================================================================
# Conversation Commands
# =============================================================================


@cli.command()
@click.option("--director", is_flag=True, help="Start in Director (archive) mode")
@click.option("--question", is_flag=True, help="Start in Question (interrogation) mode")
@click.option("--model", "-m", default=None, help="Override the inference model")
@click.pass_context
def chat(ctx: click.Context, director: bool, question: bool, model: str | None):
    """
    Start an interactive conversation.

    \b
    In-chat commands:
        /director   Toggle Director mode
        /question   Toggle Question mode
        /model M    Switch model
        /quit       Exit
    """
    settings = _settings(ctx)
    pipeline = build_pipeline(settings, model)
    session = bootstrap_session(pipeline.store, gap_hours=settings.pipeline.gap_hours)

    console.print(
        f"[dim]{len(session.history)} message(s) restored. "
        f"model={pipeline.llm.model} director={director} question={question}[/dim]"
    )

    try:
        while True:
            try:
                text = console.input("[bold cyan]you>[/bold cyan] ").strip()
            except (EOFError, KeyboardInterrupt):
                console.print()
                break

            if not text:
                continue
            if text in ("/quit", "/exit", "/q"):
                break
            if text == "/director":
                director = not director
                console.print(f"[dim]director={director}[/dim]")
                continue
            if text == "/question":
                question = not question
                console.print(f"[dim]question={question}[/dim]")
                continue
            if text.startswith("/model"):
                parts = text.split(maxsplit=1)
                if len(parts) == 2:
                    pipeline.llm.change_model(parts[1])
                console.print(f"[dim]model={pipeline.llm.model}[/dim]")
                continue

            try:
                with console.status("[dim]thinking...[/dim]"):
                    reply = pipeline.process(
                        text, session, question_mode=question, director_mode=director
                    )
            except InferenceAuthError as e:
                _auth_failure(e)
            render_reply(reply)
    finally:
        pipeline.close()


@cli.command()
@click.argument("text")
@click.option("--director", is_flag=True, help="Use Director (archive) mode")
@click.option("--question", is_flag=True, help="Use Question (interrogation) mode")
@click.option("--json", "as_json", is_flag=True, help="Output the raw reply payload as JSON")
@click.option("--model", "-m", default=None, help="Override the inference model")
@click.pass_context
def ask(ctx: click.Context, text: str, director: bool, question: bool, as_json: bool, model: str | None):
    """Run a single conversational turn."""
    settings = _settings(ctx)
    pipeline = build_pipeline(settings, model)
    session = (
        bootstrap_session(pipeline.store, gap_hours=settings.pipeline.gap_hours)
        if pipeline.store is not None
        else SessionContext()
    )

    try:
        reply = pipeline.process(text, session, question_mode=question, director_mode=director)
    except InferenceAuthError as e:
        pipeline.close(wait_for_jobs=False)
        _auth_failure(e)

    pipeline.close()
    if as_json:
        click.echo(json.dumps(reply.to_payload(), ensure_ascii=False))
    else:
        render_reply(reply)


# =============================================================================
# Config Commands
# =============================================================================


@cli.group()
def config():
    """Manage credentials and endpoints."""
    pass


@config.command("set")
@click.argument("key_name")
@click.argument("value", required=False)
def config_set(key_name: str, value: str | None):
    """
    Set a configuration value.

    \b
    Examples:
        symbiosis config set OPENROUTER_API_KEY              # Prompt (hidden)
        symbiosis config set SYMBIOSIS_STORE_URL https://...
    """
    config_mgr = ConfigManager()

    if value:
        config_mgr.set(key_name, value)
        console.print(f"[green]✓[/green] Saved {key_name}")
    else:
        config_mgr.set_interactive(key_name)


@config.command("list")
def config_list():
    """List all configured values."""
    ConfigManager().show_status()


@config.command("delete")
@click.argument("key_name")
def config_delete(key_name: str):
    """Delete a stored value."""
    if ConfigManager().delete(key_name):
        console.print(f"[green]✓[/green] Deleted {key_name}")
    else:
        console.print(f"[yellow]Key not found:[/yellow] {key_name}")


if __name__ == "__main__":
    cli()
