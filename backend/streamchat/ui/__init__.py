"""Chat UI: session state, stream reducer, renderer and HTTP transport."""

from .render import render_conversation, render_message, render_part
from .state import ChatSession, MessageStreamReducer, last_assistant_message_is_complete_with_tool_calls
from .transport import ChatTransport

__all__ = [
    "ChatSession",
    "ChatTransport",
    "MessageStreamReducer",
    "last_assistant_message_is_complete_with_tool_calls",
    "render_conversation",
    "render_message",
    "render_part",
]
