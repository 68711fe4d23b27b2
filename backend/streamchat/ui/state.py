"""
Session-local chat state for UI clients.

``ChatSession`` owns the message list for one session. It submits user text to the
chat endpoint and folds the streamed events into the in-progress assistant message.
Nothing is persisted; the conversation lives as long as the session object.
"""

import logging
import uuid
from typing import Callable, Optional

from streamchat.errors import ChatStreamError
from streamchat.models.chat import (
    TOOL_PART_PREFIX,
    Message,
    TextPart,
    ToolCallPart,
    ToolCallState,
    UnknownPart,
)
from streamchat.ui.transport import ChatTransport

logger = logging.getLogger(__name__)

STEP_START = "step-start"

EventCallback = Callable[[Message, dict], None]


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


def find_tool_part(message: Message, tool_call_id: str) -> Optional[ToolCallPart]:
    for part in message.parts:
        if isinstance(part, ToolCallPart) and part.tool_call_id == tool_call_id:
            return part
    return None


def last_assistant_message_is_complete_with_tool_calls(messages: list[Message]) -> bool:
    """
    True when the last message is from the assistant and its last step ended in tool
    calls that all have a result (output or error), i.e. the model is waiting to see them.
    """
    if not messages or messages[-1].role != "assistant":
        return False

    parts = messages[-1].parts
    last_step_start = max(
        (i for i, p in enumerate(parts) if isinstance(p, UnknownPart) and p.type == STEP_START),
        default=-1,
    )
    tool_parts = [p for p in parts[last_step_start + 1:] if isinstance(p, ToolCallPart)]
    return bool(tool_parts) and all(p.state.is_terminal for p in tool_parts)


class MessageStreamReducer:
    """Applies stream events, in order, to one assistant message."""

    def __init__(self, message: Message):
        self.message = message
        self._open_text: dict[str, TextPart] = {}

    def _text_part(self, text_id: str) -> TextPart:
        part = self._open_text.get(text_id)
        if part is None:
            part = TextPart(text="")
            self.message.parts.append(part)
            self._open_text[text_id] = part
        return part

    def _tool_part(self, event: dict) -> ToolCallPart:
        call_id = event["toolCallId"]
        part = find_tool_part(self.message, call_id)
        if part is None:
            part = ToolCallPart(
                type=f"{TOOL_PART_PREFIX}{event.get('toolName', 'unknown')}",
                tool_call_id=call_id,
                state=ToolCallState.INPUT_STREAMING,
            )
            self.message.parts.append(part)
        return part

    def _advance(self, event: dict, state: ToolCallState, **values) -> Optional[ToolCallPart]:
        part = self._tool_part(event)
        try:
            part.advance(state, **values)
        except ValueError as e:
            logger.warning("tool_state_regression_ignored", extra={"error": str(e)})
            return None
        return part

    def apply(self, event: dict) -> None:
        event_type = event.get("type")

        if event_type == "start-step":
            self.message.parts.append(UnknownPart(type=STEP_START))
        elif event_type == "text-start":
            self._text_part(event["id"])
        elif event_type == "text-delta":
            part = self._text_part(event["id"])
            part.text += event.get("delta", "")
        elif event_type == "text-end":
            self._open_text.pop(event["id"], None)
        elif event_type == "tool-input-start":
            self._tool_part(event)
        elif event_type == "tool-input-available":
            part = self._advance(event, ToolCallState.INPUT_AVAILABLE, input=event.get("input"))
            if part is not None and event.get("providerMetadata"):
                part.call_provider_metadata = event["providerMetadata"]
        elif event_type == "tool-output-available":
            self._advance(event, ToolCallState.OUTPUT_AVAILABLE, output=event.get("output"))
        elif event_type == "tool-output-error":
            self._advance(event, ToolCallState.OUTPUT_ERROR, error_text=event.get("errorText"))
        elif event_type == "error":
            raise ChatStreamError(event.get("errorText") or "The reply stream failed.")
        elif event_type in ("start", "finish-step", "finish"):
            pass
        else:
            logger.debug("stream_event_ignored", extra={"event_type": event_type})


class ChatSession:
    def __init__(
        self,
        transport: ChatTransport,
        max_auto_continuations: int = 5,
        on_event: Optional[EventCallback] = None,
    ):
        self.transport = transport
        self.max_auto_continuations = max_auto_continuations
        self.on_event = on_event

        self.messages: list[Message] = []
        self.draft_input = ""
        self.is_submitting = False
        self.error: Optional[str] = None

    def submit(self, text: Optional[str] = None) -> bool:
        """
        Send ``text`` (or the current draft) and stream the reply into ``messages``.
        Returns False without touching state or the network when the text is blank
        or a submission is already in flight.
        """
        text = self.draft_input if text is None else text
        if not text.strip() or self.is_submitting:
            return False

        self.messages.append(Message(id=_new_id("user"), role="user", parts=[TextPart(text=text)]))
        self.draft_input = ""
        self.is_submitting = True
        self.error = None
        try:
            self._request(continuation=False)
            continuations = 0
            while last_assistant_message_is_complete_with_tool_calls(self.messages):
                if continuations >= self.max_auto_continuations:
                    logger.warning("auto_continue_limit_reached", extra={"limit": self.max_auto_continuations})
                    break
                continuations += 1
                self._request(continuation=True)
        except ChatStreamError as e:
            self.error = str(e)
            logger.warning("chat_submit_failed", extra={"error": self.error})
        finally:
            self.is_submitting = False
        return True

    def _request(self, continuation: bool) -> None:
        # A continuation keeps extending the assistant message that made the tool calls
        message = self.messages[-1] if continuation else None
        reducer = MessageStreamReducer(message) if message else None

        for event in self.transport.stream(list(self.messages)):
            if reducer is None:
                message = Message(id=event.get("messageId") or _new_id("msg"), role="assistant")
                self.messages.append(message)
                reducer = MessageStreamReducer(message)
            reducer.apply(event)
            if self.on_event:
                self.on_event(message, event)
