"""
Interactive chat with a local Ollama model, with tools.

Usage:
    python src/scripts/ollama_chat.py --model qwen2.5
    python src/scripts/ollama_chat.py --model llama3.1 --conversation notes

Environment Variables:
    OLLAMA_BASE_URL: Ollama server (default: http://localhost:11434)
    TARSIER_DB_PATH: SQLite transcript database (default: tarsier.db)
    TARSIER_MAX_ITERATIONS: Tool round-trips per message (default: 10)
"""

import argparse
import asyncio
import os
import uuid
from datetime import datetime

from tarsier import (
    OllamaProvider,
    Runner,
    Settings,
    SQLiteStore,
    ToolRegistry,
    TranscriptFinalizer,
    configure_logging,
    stream_conversation,
    tool,
)
from tarsier.events import Delta, Error, ToolResult, TurnEnd


@tool
def current_time():
    """Return the current local time."""
    return datetime.now().isoformat(timespec="seconds")


@tool
def list_files(workspace_path: str, pattern: str = ""):
    """List files in the workspace whose name contains pattern."""
    root = workspace_path or "."
    return sorted(name for name in os.listdir(root) if pattern in name)


async def run_chat_loop(args: argparse.Namespace) -> None:
    settings = Settings.from_env()
    configure_logging(settings)

    provider = OllamaProvider.from_settings(settings)
    if not await provider.check_health():
        print(f"Ollama is not reachable at {settings.ollama_base_url}")
        return

    store = SQLiteStore(settings.db_path)
    await store.initialize()
    await store.ensure_conversation(args.conversation, args.model, args.system)

    registry = ToolRegistry([current_time, list_files])
    runner = Runner(
        provider=provider,
        tool_executor=registry,
        max_iterations=settings.max_iterations,
        finalizer=TranscriptFinalizer(store),
    )

    try:
        while True:
            try:
                user_input = input("User: ")
            except (EOFError, KeyboardInterrupt):
                print("\nFarewell!")
                return
            if not user_input.strip():
                continue

            print("Assistant: ", end="", flush=True)
            async for event in stream_conversation(
                runner,
                store,
                conversation_id=args.conversation,
                model=args.model,
                content=user_input,
                system_prompt=args.system,
                workspace_path=args.workspace,
                tools=registry.schemas(),
            ):
                if isinstance(event, Delta):
                    print(event.text, end="", flush=True)
                elif isinstance(event, ToolResult):
                    print(f"\n[{event.tool_name}] {event.content}\n", flush=True)
                elif isinstance(event, TurnEnd) and event.stop_reason != "end_turn":
                    print(f"\n({event.stop_reason})", end="")
                elif isinstance(event, Error):
                    print(f"\nError: {event.message}", end="")
            print("\n")
    finally:
        await provider.aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--model", default="qwen2.5")
    parser.add_argument("--conversation", default=str(uuid.uuid4()))
    parser.add_argument("--system", default=None)
    parser.add_argument("--workspace", default=os.getcwd())
    asyncio.run(run_chat_loop(parser.parse_args()))
