#!/usr/bin/env python3
"""Photo Editor Shell - terminal client for the photo editor proxy.

A rich TUI that drives the client core: streaming chat, image editing,
generation, prompt enhancement and analysis.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import os
import signal
import sys
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.style import Style
from rich.table import Table

from .client import EditorContext, ImagePayload, PhotoEditorClient
from .config import get_settings
from .errors import InvalidInput, PhotoEditorError, user_friendly_message
from .logging_setup import configure_logging

# Styles
ERROR_STYLE = Style(color="red", bold=True)
INFO_STYLE = Style(color="cyan")

_EXTENSIONS = {"image/png": ".png", "image/jpeg": ".jpg", "image/webp": ".webp"}


def save_data_uri(uri: str, directory: Path, prefix: str) -> Path:
    """Write a base64 image data URI to ``directory`` and return the path."""

    if not uri.startswith("data:"):
        raise InvalidInput("Only inline images can be saved")
    header, _, encoded = uri.partition(",")
    mime_type = header[len("data:") :].split(";", 1)[0]
    suffix = _EXTENSIONS.get(mime_type, ".img")
    try:
        data = base64.b64decode(encoded, validate=True)
    except ValueError as exc:
        raise InvalidInput("Returned image data is not valid base64") from exc
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{prefix}-{int(time.time())}{suffix}"
    path.write_bytes(data)
    return path


class PhotoEditorShell:
    """Terminal front end for ``PhotoEditorClient``."""

    def __init__(self, client: PhotoEditorClient, output_dir: Path):
        self.client = client
        self.output_dir = output_dir
        self.console = Console()
        self.running = True

    def _error(self, exc: BaseException) -> None:
        self.console.print(f"[error]{user_friendly_message(exc)}[/error]", style=ERROR_STYLE)

    def _info(self, message: str) -> None:
        self.console.print(f"[info]{message}[/info]", style=INFO_STYLE)

    def _show_help(self) -> None:
        """Show available commands."""
        help_text = """
[bold]Commands:[/bold]
  /help                      Show this help message
  /clear                     Clear the conversation
  /model                     Show current models
  /model chat|edit|gen <id>  Select a model
  /models                    List available models
  /websearch                 Toggle web search for chat
  /status                    Show rate limit status
  /edit <path> <prompt>      Edit an image file
  /generate <prompt>         Generate an image
  /enhance <prompt>          Improve an editing prompt
  /analyze <path>            Describe an image file
  /quit                      Exit

[bold]Shortcuts:[/bold]
  Ctrl+D             Exit
"""
        self.console.print(
            Panel(help_text.strip(), title="Photo Editor Help", border_style="blue")
        )

    def _show_models(self) -> None:
        for title, registry in (
            ("Image models", self.client.available_models()),
            ("Chat models", self.client.available_chat_models()),
        ):
            table = Table(title=title, show_lines=False)
            table.add_column("id", style="bold")
            table.add_column("name")
            table.add_column("description", overflow="fold")
            for model_id, info in registry.items():
                table.add_row(model_id, info.name, info.description)
            self.console.print(table)

    def _show_current_models(self) -> None:
        context = self.client.context
        self._info(
            f"chat: {context.chat_model} | edit: {context.edit_model} | "
            f"generate: {context.generation_model}"
        )

    def _set_model(self, kind: str, model_id: str) -> None:
        setters = {
            "chat": self.client.set_chat_model,
            "edit": self.client.set_edit_model,
            "gen": self.client.set_generation_model,
            "generate": self.client.set_generation_model,
        }
        setter = setters.get(kind)
        if setter is None:
            self.console.print("[dim]Usage: /model chat|edit|gen <id>[/dim]")
            return
        setter(model_id)
        self._info(f"{kind} model set to: {model_id}")

    def _show_status(self) -> None:
        status = self.client.rate_limit_status()
        search = "on" if self.client.context.web_search else "off"
        self._info(
            f"Requests remaining: {status.remaining} | wait: {status.wait_seconds}s | "
            f"web search: {search} | turns: {len(self.client.chat_history())}"
        )

    def _deliver_image(self, result: str, prefix: str, label: str) -> None:
        if not result.startswith("data:"):
            self._info(f"{label} image available at {result}")
            return
        saved = save_data_uri(result, self.output_dir, prefix)
        self._info(f"{label} image saved to {saved}")

    async def _edit(self, args: str) -> None:
        path, _, prompt = args.partition(" ")
        if not path or not prompt.strip():
            self.console.print("[dim]Usage: /edit <path> <prompt>[/dim]")
            return
        image = ImagePayload.from_file(Path(path).expanduser())
        with self.console.status("Applying AI edits to your image..."):
            result = await self.client.edit_image(image, prompt)
        self._deliver_image(result, "edited", "Edited")

    async def _generate(self, prompt: str) -> None:
        with self.console.status("Generating your image with AI..."):
            result = await self.client.generate_image(prompt)
        self._deliver_image(result, "generated", "Generated")

    async def _enhance(self, prompt: str) -> None:
        with self.console.status("Enhancing your prompt with AI..."):
            enhanced = await self.client.enhance_prompt(prompt)
        self.console.print(Panel(enhanced, title="Enhanced prompt", border_style="green"))

    async def _analyze(self, path: str) -> None:
        image = ImagePayload.from_file(Path(path).expanduser())
        with self.console.status("Analyzing your image with AI..."):
            analysis = await self.client.analyze_image(image)
        self.console.print(Markdown(analysis))

    async def _handle_command(self, cmd: str) -> bool:
        """Handle slash commands. Returns True if handled."""
        command, _, rest = cmd.strip().partition(" ")
        command = command.lower()
        rest = rest.strip()

        if command == "/help":
            self._show_help()
        elif command == "/clear":
            self.client.clear_chat_history()
            self._info("Conversation cleared. Starting fresh.")
        elif command == "/quit":
            self.running = False
        elif command == "/models":
            self._show_models()
        elif command == "/model":
            if rest:
                kind, _, model_id = rest.partition(" ")
                self._set_model(kind.lower(), model_id.strip())
            else:
                self._show_current_models()
        elif command == "/websearch":
            enabled = self.client.toggle_web_search()
            self._info(f"Web search {'enabled' if enabled else 'disabled'}")
        elif command == "/status":
            self._show_status()
        elif command == "/edit":
            await self._edit(rest)
        elif command == "/generate":
            await self._generate(rest)
        elif command == "/enhance":
            await self._enhance(rest)
        elif command == "/analyze":
            await self._analyze(rest)
        else:
            return False
        return True

    async def _stream_chat(self, message: str) -> None:
        """Send message and render the streamed reply as live markdown."""
        with Live(console=self.console, refresh_per_second=10) as live:

            def on_chunk(_delta: str, full_text: str) -> None:
                live.update(Markdown(full_text))

            await self.client.send_chat_message(message, on_chunk=on_chunk)

    async def _dispatch(self, user_input: str) -> None:
        try:
            if user_input.startswith("/"):
                if await self._handle_command(user_input):
                    return
            self.console.print()
            await self._stream_chat(user_input)
            self.console.print()
        except PhotoEditorError as exc:
            self._error(exc)
        except OSError as exc:
            self.console.print(f"[error]{exc}[/error]", style=ERROR_STYLE)

    async def run(self) -> None:
        """Main input loop."""
        self.console.print()
        self.console.print(
            "[bold]Photo Editor Shell[/bold] - Type /help for commands, Ctrl+D to exit",
            style=INFO_STYLE,
        )
        self.console.print()

        while self.running:
            try:
                user_input = Prompt.ask("[bold blue]You[/bold blue]")
                if not user_input.strip():
                    continue
                await self._dispatch(user_input)
            except EOFError:
                # Ctrl+D
                self.console.print("\n[dim]Goodbye![/dim]")
                break
            except KeyboardInterrupt:
                # Ctrl+C - just cancel current input
                self.console.print()
                continue


async def _run(server: Optional[str], output_dir: Path) -> None:
    settings = get_settings()
    if server:
        settings = settings.model_copy(update={"proxy_url": server})
    context = EditorContext.from_settings(settings)
    async with PhotoEditorClient(context) as client:
        await PhotoEditorShell(client, output_dir).run()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Photo Editor Shell - terminal client for the photo editor proxy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  photo-editor-shell                              Connect to localhost:8000
  photo-editor-shell --server http://pi:8000      Connect to a remote proxy
  photo-editor-shell --output ~/Pictures/edits    Save images elsewhere

Environment Variables:
  PHOTO_EDITOR_PROXY_URL    Default proxy URL
""",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=None,
        help="Proxy URL (default: $PHOTO_EDITOR_PROXY_URL or http://localhost:8000)",
    )
    parser.add_argument(
        "--output",
        "-o",
        default=os.environ.get("PHOTO_EDITOR_OUTPUT", "output"),
        help="Directory where edited and generated images are written",
    )

    args = parser.parse_args()

    os.environ.setdefault("LOG_LEVEL", "WARNING")
    configure_logging()

    def signal_handler(sig, frame):
        print("\nExiting...")
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)

    try:
        asyncio.run(_run(args.server, Path(args.output).expanduser()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
