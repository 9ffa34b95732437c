"""Provider factory functions for CLI.

Centralizes creation of settings, the model backend and the thread store.
Hides configuration details from command implementations.
"""

from rich.console import Console

from ..config import Settings, load_settings
from ..llm import ModelBackend, OllamaBackend
from ..threads import ThreadStore, persistence_from_settings

# Default console for output
_console = Console()


def get_settings() -> Settings:
    """Load settings from the environment (see ``chital.config.load_settings``)."""
    return load_settings()


def get_backend(settings: Settings) -> ModelBackend:
    """Create the Ollama backend described by ``settings``."""
    return OllamaBackend(host=settings.ollama_host, timeout=settings.request_timeout)


async def open_store(settings: Settings, console: Console | None = None) -> ThreadStore:
    """Connect the configured persistence backend and load its threads.

    Raises:
        SystemExit: If the backend type is unknown
    """
    import typer

    con = console or _console
    try:
        persistence = persistence_from_settings(settings)
    except ValueError as e:
        con.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    await persistence.connect()
    store = ThreadStore(persistence)
    await store.load()
    return store
