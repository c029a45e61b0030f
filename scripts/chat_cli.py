"""Interactive CLI for talking through decisions with the local coach."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from decision_coach.chat.events import ChatEvent, ChatEventKind
from decision_coach.chat.models import MessageRole
from decision_coach.chat.pipeline import SendStatus
from decision_coach.chat.service import ChatService
from decision_coach.log_setup import setup_logging
from decision_coach.runtime import create_runtime

COMMANDS = {
    ":help": "Show this help message",
    ":quit": "Exit the chat",
    ":new": "Start a new conversation",
    ":sessions": "List recent conversations",
    ":open": "Resume a conversation: :open <session_id>",
    ":rename": "Rename the current conversation: :rename <title>",
    ":delete": "Delete a conversation: :delete <session_id>",
    ":attach": "Attach a decision: :attach <decision_id>",
    ":detach": "Detach a decision: :detach <decision_id>",
    ":tools": "List coaching tools and their slash commands",
    ":model": "Show or set the model: :model [name]",
}


def _print_help() -> None:
    print("Available commands:")
    for cmd, desc in COMMANDS.items():
        print(f"  {cmd:<10} {desc}")
    print("Start a line with /<tool> followed by a space to run a coaching tool.")


def _print_tools(service: ChatService) -> None:
    for tool in service.registry.list():
        aliases = ", ".join(f"/{alias}" for alias in service.registry.shortcuts(tool.id))
        print(f"- {tool.name} ({aliases}): {tool.description}")


async def _print_sessions(service: ChatService) -> None:
    summaries = await service.list_sessions(limit=20)
    if not summaries:
        print("No saved conversations yet.")
        return
    for summary in summaries:
        marker = "*" if summary.id == service.state.session_id else " "
        print(f"{marker} {summary.id}  {summary.display_title}  ({summary.message_count} messages)")


class StreamPrinter:
    """Prints assistant text as it streams and tool results as they land."""

    def __init__(self) -> None:
        self.printed: Dict[str, int] = {}

    def __call__(self, event: ChatEvent) -> None:
        if event.kind is ChatEventKind.ERROR:
            print(f"\n[error] {event.payload.get('error')}")
            return
        if event.kind is not ChatEventKind.MESSAGE_UPSERTED:
            return
        message = event.payload["message"]
        if message.role is MessageRole.ASSISTANT:
            seen = self.printed.get(message.id)
            if seen is None:
                print("Coach> ", end="", flush=True)
                seen = 0
            print(message.content[seen:], end="", flush=True)
            self.printed[message.id] = len(message.content)
        elif message.role is MessageRole.TOOL_RESULT and message.id not in self.printed:
            self.printed[message.id] = len(message.content)
            print(f"\n{message.content}\n")


async def _fill_tool_form(service: ChatService, message_id: str) -> None:
    message = next((m for m in service.messages if m.id == message_id), None)
    if message is None or message.tool_input is None:
        return
    tool = service.registry.get(message.tool_input.tool_id)
    values: Dict[str, object] = {}
    for field_def in tool.input_fields:
        suffix = " (optional)" if not field_def.required else ""
        raw = await asyncio.to_thread(input, f"  {field_def.label}{suffix}: ")
        if raw.strip():
            values[field_def.name] = raw.strip()
    errors = await service.submit_tool_input(message_id, values)
    if errors:
        for name, error in errors.items():
            print(f"  [{name}] {error}")
        service.cancel_tool_input(message_id)


async def _handle_command(service: ChatService, user_input: str, logger: logging.Logger) -> bool:
    """Run a ``:`` command. Returns False when the loop should stop."""

    cmd, _, arg = user_input.partition(" ")
    cmd = cmd.lower()
    arg = arg.strip()
    if cmd in (":quit", ":q"):
        logger.info("Exiting chat loop", extra={"session_id": service.state.session_id})
        return False
    if cmd == ":help":
        _print_help()
    elif cmd == ":new":
        session = service.new_session(service.state.attached_decision_ids)
        print(f"New conversation: {session.id}")
    elif cmd == ":sessions":
        await _print_sessions(service)
    elif cmd == ":open" and arg:
        try:
            messages = await service.open_session(arg)
        except KeyError as exc:
            print(exc)
            return True
        for message in messages:
            speaker = "You" if message.role is MessageRole.USER else "Coach"
            print(f"{speaker}> {message.content}")
    elif cmd == ":rename" and arg:
        await service.rename_session(service.state.session_id, arg)
    elif cmd == ":delete" and arg:
        await service.delete_session(arg)
        print(f"Deleted {arg}")
    elif cmd == ":attach" and arg:
        print(f"Attached: {', '.join(await service.attach_decision(arg))}")
    elif cmd == ":detach" and arg:
        print(f"Attached: {', '.join(await service.detach_decision(arg)) or 'none'}")
    elif cmd == ":tools":
        _print_tools(service)
    elif cmd == ":model":
        if arg:
            service.set_model(arg)
        print(f"Model: {service.state.model or service.llm_client.config.model}")
        if service.state.models:
            print("Installed: " + ", ".join(service.state.models))
    else:
        print(f"Unknown command: {user_input}")
    return True


async def chat_loop(session_id: Optional[str], attach: List[str]) -> None:
    setup_logging()
    logger = logging.getLogger("decision_coach.cli")
    service = create_runtime().create_chat_service()
    printer = StreamPrinter()
    service.events.subscribe(printer)

    if session_id:
        await service.open_session(session_id)
    else:
        service.new_session(attach)
    if not await service.check_backend():
        print("Ollama is not reachable; start it and use :model to retry.")
    print("Starting decision coach chat. Type :help for commands.")

    try:
        while True:
            try:
                user_input = (await asyncio.to_thread(input, "You> ")).strip()
            except EOFError:
                print()
                break
            if not user_input:
                continue
            if user_input.startswith(":"):
                if not await _handle_command(service, user_input, logger):
                    break
                if user_input.lower().startswith(":model"):
                    await service.check_backend()
                continue
            if not service.pipeline.backend_ready:
                await service.check_backend()
            if user_input.startswith("/") and " " not in user_input:
                user_input += " "
            result = await service.send(user_input)
            if result.message is not None and result.message.role is MessageRole.TOOL_INPUT:
                await _fill_tool_form(service, result.message.id)
            elif result.status is SendStatus.REJECTED:
                print(f"[not sent] {result.error}")
            await service.tools.wait_for_followups()
            print()
    finally:
        await service.close_view()


def main(argv: list[str]) -> None:
    parser = argparse.ArgumentParser(description="Talk through decisions with the local coach")
    parser.add_argument("--session", help="Existing session ID to resume")
    parser.add_argument(
        "--attach",
        action="append",
        default=[],
        help="Decision ID to attach to a new conversation (repeatable)",
    )
    args = parser.parse_args(argv)
    asyncio.run(chat_loop(args.session, args.attach))


if __name__ == "__main__":
    main(sys.argv[1:])
