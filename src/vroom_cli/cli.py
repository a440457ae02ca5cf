from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm, Prompt
from rich.table import Table

from .cleanup import CleanupRegistry, install_signal_handlers, restore_signal_handlers
from .errors import ConfigError
from .gen.registry import KEYED_PROVIDERS, PROVIDER_LABELS, ProviderRegistry
from .persist import FileSink
from .preview import BrowserPreview
from .store import KNOWN_KEYS, ConfigStore, mask_secret
from .workflow import GenerationWorkflow, WorkflowState
from .zoom import resolve_output_directory

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=verbose)],
        force=True,
    )


class RichInteraction:
    def __init__(self, console: Console):
        self.console = console

    def ask_prompt(self) -> str:
        return Prompt.ask("Describe the Zoom background you want", console=self.console)

    def confirm_approve(self) -> bool:
        return Confirm.ask("Do you approve this image?", console=self.console)

    def confirm_retry(self) -> bool:
        return Confirm.ask("Do you want to modify the prompt and regenerate?", console=self.console)

    def ask_new_prompt(self, default: str) -> str:
        return Prompt.ask("Enter new prompt", default=default, console=self.console)

    def notify(self, message: str) -> None:
        self.console.print(message)

    def status(self, message: str) -> AbstractContextManager[object]:
        return self.console.status(message)


@app.command()
def generate(
    prompt: Optional[str] = typer.Argument(None, help="Description of the background to generate"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="huggingface, openai, stability, placeholder"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", file_okay=False, help="Save here instead of the Zoom backgrounds folder"),
    no_open: bool = typer.Option(False, "--no-open", help="Write the preview page but don't open a browser"),
    config_path: Optional[Path] = typer.Option(None, "--config", exists=True, dir_okay=False),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Generate a background: prompt → generate → preview → approve → save."""
    _configure_logging(verbose)

    try:
        registry = ProviderRegistry.from_config_file(config_path)
    except ConfigError as e:
        console.print(f"[bold red]Config error:[/bold red] {e}")
        raise typer.Exit(code=2) from e

    provider_name = registry.resolve_name(provider)
    if provider_name not in registry.available():
        console.print(f"[bold red]Error:[/bold red] Invalid provider \"{provider_name}\"")
        console.print(f"[yellow]Valid providers:[/yellow] {', '.join(registry.available())}")
        raise typer.Exit(code=2)

    if prompt is not None and not prompt.strip():
        console.print("[bold red]Error:[/bold red] Prompt cannot be empty")
        raise typer.Exit(code=2)

    target_dir = output_dir or registry.config.output_dir
    cleanup = CleanupRegistry()
    sink = FileSink(lambda: resolve_output_directory(target_dir))
    workflow = GenerationWorkflow(
        providers=registry.get_provider,
        preview=BrowserPreview(open_browser=not no_open),
        persistence=sink,
        cleanup=cleanup,
        interaction=RichInteraction(console),
        policy=registry.config.retry.to_policy(),
        preferences=registry.store,
        preflight=sink.prepare,
    )

    previous = install_signal_handlers(
        cleanup, on_signal=lambda sig: console.print(f"\nReceived {sig.name}, cleaning up...")
    )
    try:
        outcome = workflow.run(prompt, provider_name)
    finally:
        restore_signal_handlers(previous)

    if outcome.state is WorkflowState.COMPLETED:
        console.print(f"\n[bold green]Zoom background saved to:[/bold green] {outcome.path}")
        raise typer.Exit(code=0)
    if outcome.state is WorkflowState.CANCELLED:
        console.print("Generation cancelled.")
        raise typer.Exit(code=0)

    console.print(f"[bold red]Error:[/bold red] Failed {outcome.context}")
    console.print(f"[yellow]Solution:[/yellow] {outcome.user_message}")
    raise typer.Exit(code=1)


@app.command("providers")
def providers_cmd(
    config_path: Optional[Path] = typer.Option(None, "--config", exists=True, dir_okay=False),
):
    """List image providers, their deadlines and credential status."""
    try:
        registry = ProviderRegistry.from_config_file(config_path)
    except ConfigError as e:
        console.print(f"[bold red]Config error:[/bold red] {e}")
        raise typer.Exit(code=2) from e

    table = Table(title="Image providers")
    table.add_column("Name")
    table.add_column("Description")
    table.add_column("Deadline", justify="right")
    table.add_column("API key")
    default = registry.resolve_name()
    for name in registry.available():
        if name not in KEYED_PROVIDERS:
            key_status = "[dim]optional[/dim]" if name == "huggingface" else "[dim]n/a[/dim]"
        elif registry.has_credentials(name):
            key_status = "[green]configured[/green]"
        else:
            key_status = "[red]missing[/red]"
        label = f"{name} (default)" if name == default else name
        table.add_row(label, PROVIDER_LABELS[name], f"{registry.deadline_for(name):g}s", key_status)
    console.print(table)


config_app = typer.Typer(add_completion=False, no_args_is_help=True)
app.add_typer(config_app, name="config", help="Manage API keys and preferences")


@config_app.command("set")
def config_set(key: str = typer.Argument(...), value: str = typer.Argument(...)):
    store = ConfigStore()
    try:
        store.set(key, value)
    except KeyError as e:
        console.print(f"[bold red]Error:[/bold red] {e.args[0]}")
        raise typer.Exit(code=2) from e
    console.print(f"[bold green]Saved[/bold green] {key}")


@config_app.command("get")
def config_get(
    key: str = typer.Argument(...),
    show: bool = typer.Option(False, "--show", help="Print secrets unmasked"),
):
    if key not in KNOWN_KEYS:
        console.print(f"[bold red]Error:[/bold red] Unknown config key '{key}'. Known keys: {sorted(KNOWN_KEYS)}")
        raise typer.Exit(code=2)
    value = ConfigStore().get(key)
    if value is None:
        console.print(f"{key} is not set")
        raise typer.Exit(code=1)
    console.print(value if show or not key.endswith("ApiKey") else mask_secret(value))


@config_app.command("path")
def config_path_cmd():
    console.print(str(ConfigStore().path))


if __name__ == "__main__":
    app()
