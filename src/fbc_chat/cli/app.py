"""Main CLI application using Typer."""
import asyncio
import logging

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..chat import ChatSession, SessionSnapshot
from ..usage import SessionCostTracker, TokenUsage, calculate_cost, get_model_pricing
from .providers import get_flag_resolver, get_session

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="fbc-chat",
    help="Streaming client for the F.B/c AI chat assistant",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class StreamPrinter:
    """Prints the growing assistant message as new snapshots arrive."""

    def __init__(self, out: Console) -> None:
        self.out = out
        self._message_id: str | None = None
        self._printed = ""

    def __call__(self, snapshot: SessionSnapshot) -> None:
        if not snapshot.messages or snapshot.messages[-1].role != "assistant":
            return
        message = snapshot.messages[-1]
        if message.id != self._message_id:
            self._message_id = message.id
            self._printed = ""

        if message.content.startswith(self._printed):
            new_text = message.content[len(self._printed):]
        else:
            # Content was replaced (fallback text), start a fresh line
            new_text = "\n" + message.content
        if new_text:
            self.out.print(new_text, end="", markup=False, highlight=False)
            self._printed = message.content


async def _send_and_print(session: ChatSession, text: str) -> None:
    printer = StreamPrinter(console)
    unsubscribe = session.subscribe(printer)
    try:
        sent = await session.send_message(text)
    finally:
        unsubscribe()
    if not sent:
        console.print("[yellow]Message dropped (sent too quickly or empty)[/yellow]")
    else:
        console.print()


def _print_costs(tracker: SessionCostTracker) -> None:
    if tracker.request_count == 0:
        return
    budget = tracker.budget
    console.print(
        f"[dim]{tracker.request_count} requests, {tracker.total_tokens} tokens, "
        f"${tracker.total_cost:.6f} ({budget.percentage:.1f}% of ${budget.limit:.2f} daily budget)[/dim]"
    )


@app.command()
def send(
    message: str = typer.Argument(..., help="Message to send"),
    admin: bool = typer.Option(False, "--admin", "-a", help="Use the admin chat route"),
    session_id: str | None = typer.Option(None, "--session-id", "-s", help="Session id"),
    base_url: str | None = typer.Option(None, "--base-url", "-u", help="Chat server root URL"),
):
    """Send one message and stream the reply."""
    async def _send():
        session, tracker = get_session(admin=admin, session_id=session_id, base_url=base_url, console=console)
        async with session:
            await _send_and_print(session, message)
            _print_costs(tracker)
            if session.error is not None:
                raise typer.Exit(code=1)

    asyncio.run(_send())


@app.command()
def chat(
    admin: bool = typer.Option(False, "--admin", "-a", help="Use the admin chat route"),
    session_id: str | None = typer.Option(None, "--session-id", "-s", help="Session id"),
    user_id: str | None = typer.Option(None, "--user-id", help="User id forwarded with requests"),
    base_url: str | None = typer.Option(None, "--base-url", "-u", help="Chat server root URL"),
):
    """Interactive chat. Commands: /clear, /reload, /quit."""
    async def _chat():
        session, tracker = get_session(
            admin=admin,
            session_id=session_id,
            user_id=user_id,
            base_url=base_url,
            console=console,
        )
        mode = "admin" if admin else "user"
        console.print(Panel(
            f"Session: {session.context.session_id or 'anonymous'}\nMode: {mode}",
            title="F.B/c AI",
            border_style="cyan",
        ))

        async with session:
            while True:
                try:
                    text = await asyncio.to_thread(console.input, "[bold green]you>[/bold green] ")
                except (EOFError, KeyboardInterrupt):
                    break

                command = text.strip().lower()
                if command in ("/quit", "/exit"):
                    break
                if command == "/clear":
                    session.clear_messages()
                    console.print("[dim]Conversation cleared[/dim]")
                    continue
                if command == "/reload":
                    printer = StreamPrinter(console)
                    unsubscribe = session.subscribe(printer)
                    try:
                        if not await session.reload():
                            console.print("[yellow]Nothing to reload (or sent too quickly)[/yellow]")
                    finally:
                        unsubscribe()
                    console.print()
                    continue

                console.print("[bold magenta]ai>[/bold magenta] ", end="")
                await _send_and_print(session, text)

            _print_costs(tracker)

    asyncio.run(_chat())


@app.command()
def flags(
    session_id: str | None = typer.Option(None, "--session-id", "-s", help="Session id"),
    user_id: str | None = typer.Option(None, "--user-id", help="User id"),
    admin: bool = typer.Option(False, "--admin", "-a", help="Resolve as an admin"),
):
    """Show resolved feature flags and migration status."""
    resolver = get_flag_resolver()
    resolved = resolver.resolve(session_id, user_id, admin)
    status = resolver.migration_status(session_id, user_id, admin)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Flag", style="cyan")
    table.add_column("Value")
    for name, value in resolved.model_dump().items():
        table.add_row(name, str(value))
    console.print(table)

    console.print(f"Phase: [bold]{status.phase.value}[/bold]")
    console.print(f"Features: {', '.join(status.features) or '-'}")
    console.print(
        f"Native SDK: {resolver.should_use_native_sdk(session_id, user_id, admin)}"
    )


@app.command()
def cost(
    provider: str = typer.Argument(..., help="Provider, e.g. openai"),
    model: str = typer.Argument(..., help="Model, e.g. gpt-4o-mini"),
    input_tokens: int = typer.Argument(..., min=0, help="Input tokens"),
    output_tokens: int = typer.Argument(..., min=0, help="Output tokens"),
):
    """Price a completion."""
    if get_model_pricing(provider, model) is None:
        console.print(f"[yellow]No pricing for {provider}/{model}; cost is 0[/yellow]")

    result = calculate_cost(provider, model, TokenUsage.from_counts(input_tokens, output_tokens))

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Input cost", f"${result.input_cost:.6f}")
    table.add_row("Output cost", f"${result.output_cost:.6f}")
    table.add_row("Total cost", f"${result.total_cost:.6f}")
    console.print(table)


if __name__ == "__main__":
    app()
