"""Main CLI application using Typer."""
import asyncio

import typer
from rich.console import Console
from rich.table import Table

from ..exceptions import ThreadNotFoundError, TransportError, describe_error
from ..logging_utils import configure_logging
from ..session import SessionRegistry
from ..threads import ChatThread, ThreadEvent, ThreadEventKind
from .providers import get_backend, get_settings, open_store

# Create Typer app
app = typer.Typer(
    name="chital",
    help="Chat with models served by a local Ollama server",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()


@app.callback()
def main():
    """Chat with models served by a local Ollama server."""
    configure_logging(get_settings().log_level)


class StreamPrinter:
    """Store listener that echoes one thread's assistant replies as they grow."""

    def __init__(self, thread: ChatThread, out: Console) -> None:
        self._thread = thread
        self._out = out
        self._printed: dict[str, int] = {}

    def __call__(self, event: ThreadEvent) -> None:
        if event.thread_id != self._thread.id:
            return

        if event.kind is ThreadEventKind.TITLE_CHANGED:
            self._out.print(f"[dim]Thread titled: {self._thread.title}[/dim]")
            return

        if event.kind not in (ThreadEventKind.MESSAGE_ADDED, ThreadEventKind.MESSAGE_UPDATED):
            return

        for message_id in event.message_ids:
            message = self._thread.find_message(message_id)
            if message is None or message.is_user:
                continue
            if message_id not in self._printed:
                self._out.print("[bold magenta]Assistant:[/] ", end="")
                self._printed[message_id] = 0
            delta = message.text[self._printed[message_id]:]
            if delta:
                self._out.print(delta, end="", markup=False, highlight=False)
                self._printed[message_id] = len(message.text)


def _last_assistant_message(thread: ChatThread):
    for message in reversed(thread.chronological_messages):
        if not message.is_user:
            return message
    return None


@app.command()
def models():
    """List the models installed on the local server."""
    async def _models():
        settings = get_settings()
        backend = get_backend(settings)
        try:
            names = await backend.list_models()
        except TransportError as e:
            console.print(f"[red]Error: {describe_error(e)}[/red]")
            raise typer.Exit(code=1)
        finally:
            await backend.close()

        if not names:
            console.print("[yellow]No models installed. Pull one with: ollama pull <model>[/yellow]")
            return

        for name in names:
            marker = " [green](default)[/green]" if name == settings.default_model_name else ""
            console.print(f"{name}{marker}")

    asyncio.run(_models())


@app.command()
def threads():
    """List saved threads, newest first."""
    async def _threads():
        settings = get_settings()
        store = await open_store(settings, console)
        try:
            saved = store.list_threads()
            if not saved:
                console.print("[dim]No saved threads.[/dim]")
                return

            table = Table(title="Threads")
            table.add_column("ID", style="cyan", no_wrap=True)
            table.add_column("Title")
            table.add_column("Model", style="green")
            table.add_column("Messages", justify="right")
            table.add_column("Created", style="dim")

            for thread in saved:
                table.add_row(
                    thread.id,
                    thread.title or "(untitled)",
                    thread.selected_model or "-",
                    str(len(thread.messages)),
                    thread.created_at.strftime("%Y-%m-%d %H:%M"),
                )
            console.print(table)
        finally:
            await store.persistence.disconnect()

    asyncio.run(_threads())


@app.command()
def show(thread_id: str = typer.Argument(..., help="Thread id")):
    """Print a saved thread's transcript."""
    async def _show():
        settings = get_settings()
        store = await open_store(settings, console)
        try:
            thread = store.get_thread(thread_id)
        except ThreadNotFoundError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.persistence.disconnect()

        console.print(f"[bold]{thread.title or '(untitled)'}[/bold]")
        for message in thread.chronological_messages:
            speaker = "[bold cyan]User:[/]" if message.is_user else "[bold magenta]Assistant:[/]"
            console.print(speaker)
            console.print(message.text, markup=False, highlight=False)
            console.print()

    asyncio.run(_show())


@app.command()
def delete(thread_id: str = typer.Argument(..., help="Thread id")):
    """Delete a saved thread and its messages."""
    async def _delete():
        settings = get_settings()
        store = await open_store(settings, console)
        try:
            thread = store.get_thread(thread_id)
            await store.delete_thread(thread)
        except ThreadNotFoundError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.persistence.disconnect()
        console.print(f"[green]Deleted thread {thread_id}[/green]")

    asyncio.run(_delete())


@app.command()
def chat(
    thread_id: str | None = typer.Option(
        None,
        "--thread",
        "-t",
        help="Resume a saved thread instead of starting a new one"
    ),
    model: str | None = typer.Option(
        None,
        "--model",
        "-m",
        help="Model to use for this thread"
    )
):
    """Start an interactive chat. Type /retry to regenerate the last reply, /quit to leave."""
    async def _chat():
        settings = get_settings()
        store = await open_store(settings, console)
        backend = get_backend(settings)
        registry = SessionRegistry(store, backend, settings)

        try:
            available = await registry.refresh_models()
            if not available:
                console.print("[yellow]Warning: no models available from the Ollama server[/yellow]")

            thread = store.get_thread(thread_id) if thread_id else store.new_draft()
            if model:
                thread.selected_model = model
            controller = registry.controller_for(thread)
            store.subscribe(StreamPrinter(thread, console))
            controller.on_error(lambda _thread, message: console.print(f"\n[red]Error: {message}[/red]"))

            console.print(f"[dim]Model: {thread.selected_model or 'none'}[/dim]")
            while True:
                try:
                    text = await asyncio.to_thread(console.input, "[bold cyan]You:[/] ")
                except (EOFError, KeyboardInterrupt):
                    break

                text = text.strip()
                if text in ("/quit", "/exit"):
                    break
                if text == "/retry":
                    target = _last_assistant_message(thread)
                    if target is None:
                        console.print("[yellow]Nothing to retry yet.[/yellow]")
                        continue
                    await controller.retry(target)
                else:
                    await controller.submit(text)
                console.print()

            await registry.summarizer.wait()
        except ThreadNotFoundError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await backend.close()
            await store.persistence.disconnect()

    asyncio.run(_chat())


if __name__ == "__main__":
    app()
