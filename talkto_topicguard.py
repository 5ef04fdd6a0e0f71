#!/usr/bin/env python3
"""
Topic Guard Chat - Rich-based CLI for a topic-restricted conversation.

Runs the conversation in-process: the relevance gate, the embedding model and
the generation stream all live in this process.

Usage:
    python talkto_topicguard.py                          # Interactive chat
    python talkto_topicguard.py --topic-file dogs.json   # Pick a topic
    python talkto_topicguard.py --headless "message"     # One-shot query
"""

import argparse
import asyncio
import logging
import sys

from rich.align import Align
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from clients.embeddings.model_loader import get_model_loader
from clients.llm_provider import LLMProvider
from cns.core.message import ChatMessage, Role
from cns.core.stream_events import (
    CompleteEvent,
    ErrorEvent,
    RejectedEvent,
    TextEvent,
    ValidatingEvent,
)
from cns.services.orchestrator import ConversationOrchestrator
from cns.services.relevance_gate import RelevanceGate
from config.config import AppConfig, TopicConfig, get_config
from utils.errors import TopicConfigError
from utils.logging_setup import configure_logging

console = Console()
logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Rendering
# ─────────────────────────────────────────────────────────────────────────────

def user_panel(text: str) -> Align:
    """User message - cyan border, right-aligned."""
    width = min(len(text) + 4, int(console.width * 0.6))
    return Align.right(Panel(text, border_style="cyan", width=max(width, 20), padding=(0, 1)))


def agent_panel(text: str, is_error: bool = False, title: str = None) -> Panel:
    """Agent message - magenta border, red when flagged as an error."""
    longest = max(text.split("\n"), key=len) if text else ""
    width = min(len(longest) + 4, int(console.width * 0.7))
    style = "red" if is_error else "magenta"
    return Panel(text or "…", border_style=style, width=max(width, 20), padding=(0, 1), title=title)


def render_message(message: ChatMessage, assistant_name: str) -> None:
    if message.role is Role.USER:
        console.print(user_panel(message.text))
    else:
        console.print(agent_panel(message.text, message.is_error, title=assistant_name))
    console.print()


def render_status_bar(orchestrator: ConversationOrchestrator) -> None:
    model_state = orchestrator.gate.loader.state.value
    left = Text(f" {orchestrator.topic.topic} • model {model_state}", style="cyan")
    right = Text("/help • ctrl+c quit", style="dim")
    padding = console.width - len(left.plain) - len(right.plain)
    console.print(Text.assemble(left, " " * max(padding, 1), right))
    console.print("─" * console.width, style="dim")


# ─────────────────────────────────────────────────────────────────────────────
# Conversation
# ─────────────────────────────────────────────────────────────────────────────

def build_orchestrator(config: AppConfig) -> ConversationOrchestrator:
    gate = RelevanceGate(loader=get_model_loader(config.embeddings), settings=config.validation)
    return ConversationOrchestrator(
        topic=config.topic,
        gate=gate,
        llm_provider=LLMProvider(config.generation),
    )


async def send(orchestrator: ConversationOrchestrator, text: str) -> ChatMessage:
    """Stream one reply to the terminal and return the final agent message."""
    name = orchestrator.topic.assistant_name
    final = None

    with Live(Text("Validating topic relevance...", style="dim green"), console=console, transient=True) as live:
        async for event in orchestrator.handle_user_message(text):
            if isinstance(event, ValidatingEvent):
                live.update(Text("Validating topic relevance...", style="dim green"))
            elif isinstance(event, TextEvent):
                live.update(agent_panel(event.message.text, title=name))
            elif isinstance(event, (RejectedEvent, ErrorEvent, CompleteEvent)):
                final = event.message

    return final


async def chat_loop(orchestrator: ConversationOrchestrator) -> None:
    console.print()
    render_message(orchestrator.messages[0], orchestrator.topic.assistant_name)
    render_status_bar(orchestrator)

    while True:
        try:
            user_input = (await asyncio.to_thread(console.input, "[cyan]>[/cyan] ")).strip()
        except (KeyboardInterrupt, EOFError):
            console.print("\n[dim]Goodbye![/dim]")
            break

        if not user_input:
            continue

        if user_input.lower() in ("quit", "exit"):
            console.print("[dim]Goodbye![/dim]")
            break

        if user_input.startswith("/"):
            parts = user_input[1:].split(maxsplit=1)
            cmd = parts[0].lower() if parts else ""
            arg = parts[1] if len(parts) > 1 else None

            if cmd == "help":
                console.print(agent_panel("/status\n/topic <file.json>\n/clear\nquit, exit"))
            elif cmd == "status":
                topic = orchestrator.topic
                console.print(agent_panel(
                    f"Topic: {topic.topic}\n"
                    f"Keywords: {', '.join(topic.keywords) or '(none - validation off)'}\n"
                    f"Embedding model: {orchestrator.gate.loader.state.value}"
                ))
            elif cmd == "topic":
                if not arg:
                    console.print(agent_panel("Usage: /topic <file.json>", is_error=True))
                    continue
                try:
                    welcome = orchestrator.set_topic(TopicConfig.from_file(arg))
                except TopicConfigError as e:
                    console.print(agent_panel(str(e), is_error=True))
                    continue
                console.clear()
                render_message(welcome, orchestrator.topic.assistant_name)
            elif cmd == "clear":
                console.clear()
                render_status_bar(orchestrator)
            else:
                console.print(agent_panel(f"Unknown: /{cmd}", is_error=True))
            continue

        console.print(user_panel(user_input))
        console.print()
        final = await send(orchestrator, user_input)
        if final is not None:
            render_message(final, orchestrator.topic.assistant_name)
        render_status_bar(orchestrator)


async def one_shot(orchestrator: ConversationOrchestrator, message: str) -> int:
    final = None
    async for event in orchestrator.handle_user_message(message):
        if isinstance(event, (RejectedEvent, ErrorEvent, CompleteEvent)):
            final = event.message
    if final is None:
        return 1
    stream = sys.stderr if final.is_error else sys.stdout
    print(final.text, file=stream)
    return 1 if final.is_error else 0


def main():
    parser = argparse.ArgumentParser(description="Topic Guard Chat")
    parser.add_argument("--topic-file", type=str, help="JSON topic definition")
    parser.add_argument("--headless", type=str, help="One-shot message")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level")
    args = parser.parse_args()

    configure_logging(args.log_level)
    config = get_config()

    if args.topic_file:
        try:
            config.topic = TopicConfig.from_file(args.topic_file)
        except TopicConfigError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)

    orchestrator = build_orchestrator(config)

    if args.headless:
        sys.exit(asyncio.run(one_shot(orchestrator, args.headless)))

    try:
        asyncio.run(chat_loop(orchestrator))
    except KeyboardInterrupt:
        console.print("\n[dim]Goodbye![/dim]")


if __name__ == "__main__":
    main()
