"""CLI entry point for the booking assistant.

A terminal chat loop for testing and development.  For production, use
the FastAPI server (booking_assistant/server.py).

Usage:
    python -m booking_assistant.main            # normal mode (quiet)
    python -m booking_assistant.main --debug    # debug mode (shows API calls)
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from booking_assistant.agent import BookingAgent, create_booking_agent
from booking_assistant.config import KNOWLEDGE_BASE_PATH
from booking_assistant.knowledge.store import open_knowledge_store
from booking_assistant.messages import ConversationMessage

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("booking_assistant").setLevel(logging.DEBUG if debug else logging.INFO)


async def _read_line(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


async def chat_loop(agent: BookingAgent) -> None:
    history: list[ConversationMessage] = []

    while True:
        try:
            user_input = (await _read_line("You: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            return

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            return

        if user_input.lower() == "new":
            history = []
            print("\n>> New conversation started.\n")
            continue

        turn = await agent.chat(user_input, history)
        if not turn.failed:
            history = turn.history
        print(f"\nAssistant: {turn.response}\n")


async def _run() -> None:
    store = await open_knowledge_store(KNOWLEDGE_BASE_PATH)
    print(f"  Knowledge base: {len(store.documents)} documents loaded.\n")
    await chat_loop(create_booking_agent(store))


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Booking assistant CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Booking Assistant - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new conversation.")
    print("=" * 60 + "\n")

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        print("\n\nGoodbye!")


if __name__ == "__main__":
    main()
