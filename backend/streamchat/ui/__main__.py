"""
Terminal chat client.

    python -m streamchat.ui --url http://localhost:8000/api/chat

Text streams in as it arrives; tool progress and results are printed on their own lines.
"""

import argparse
import logging

from streamchat.models.chat import Message
from streamchat.ui.render import render_conversation, render_part
from streamchat.ui.state import ChatSession, find_tool_part
from streamchat.ui.transport import DEFAULT_API, ChatTransport

_TOOL_EVENTS = ("tool-input-available", "tool-output-available", "tool-output-error")


def _print_event(message: Message, event: dict) -> None:
    event_type = event.get("type")
    if event_type == "text-delta":
        print(event.get("delta", ""), end="", flush=True)
    elif event_type == "text-end":
        print()
    elif event_type in _TOOL_EVENTS:
        part = find_tool_part(message, event["toolCallId"])
        if part is not None:
            print(f"  [{render_part(part)}]", flush=True)


def main():
    parser = argparse.ArgumentParser(description="streamchat - terminal chat client")
    parser.add_argument("--url", default=DEFAULT_API, help=f"Chat endpoint (default: {DEFAULT_API})")
    parser.add_argument(
        "--max-auto-continue",
        type=int,
        default=5,
        help="How many times to re-submit automatically after tool results (default: 5)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s %(message)s")

    transport = ChatTransport(api=args.url)
    session = ChatSession(transport, max_auto_continuations=args.max_auto_continue, on_event=_print_event)
    print(render_conversation([]))
    try:
        while True:
            try:
                session.draft_input = input("\n> ")
            except EOFError:
                break
            if not session.submit():
                continue
            if session.error:
                print(f"Something went wrong: {session.error}")
    except KeyboardInterrupt:
        pass
    finally:
        transport.close()


if __name__ == "__main__":
    main()
