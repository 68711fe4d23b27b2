import base64
import binascii
import itertools
import json
import logging
import uuid
from typing import Any, Generator, Iterable, Iterator, Optional

from google import genai
from google.genai import types

from streamchat.config import CHAT_MAX_STEPS, CHAT_TEMPERATURE, GEMINI_MODEL, SYSTEM_PROMPT
from streamchat.errors import ProviderError, ToolExecutionError
from streamchat.models.chat import Message, TextPart, ToolCallPart, ToolCallState, UnknownPart
from streamchat.services.tools import agent_tools, execute_tool

logger = logging.getLogger(__name__)

DONE_MARKER = "data: [DONE]\n\n"

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "x-vercel-ai-ui-message-stream": "v1",
}


# ── History Conversion ─────────────────────────────────────────────────────────

def _part_text(part: Any) -> str:
    if isinstance(part, TextPart):
        return part.text
    if isinstance(part, UnknownPart):
        if part.text:
            return part.text
        if isinstance(part.content, str):
            return part.content
    return ""


def _tool_response(part: ToolCallPart) -> dict:
    if part.state == ToolCallState.OUTPUT_AVAILABLE:
        return {"result": part.output}
    return {"error": part.error_text}


def _thought_signature(part: ToolCallPart) -> Optional[bytes]:
    """Recover the Gemini thought signature stored on a tool part, if any."""
    google = (part.call_provider_metadata or {}).get("google") or {}
    encoded = google.get("thoughtSignature")
    if not isinstance(encoded, str):
        return None
    try:
        return base64.b64decode(encoded, validate=True)
    except binascii.Error:
        logger.warning("thought_signature_invalid", extra={"tool_call_id": part.tool_call_id})
        return None


def _assistant_contents(message: Message) -> list[types.Content]:
    """
    Split an assistant message into model turns.
    Each completed tool part becomes a function_call in the model turn, followed by a
    user turn carrying its function_response. Text after tool results starts a new turn.
    """
    contents: list[types.Content] = []
    model_parts: list[types.Part] = []
    responses: list[types.Part] = []

    def flush():
        if model_parts:
            contents.append(types.Content(role="model", parts=list(model_parts)))
        if responses:
            contents.append(types.Content(role="user", parts=list(responses)))
        model_parts.clear()
        responses.clear()

    for part in message.parts:
        if isinstance(part, ToolCallPart):
            # Calls still waiting on input or output have nothing to send back yet
            if not part.state.is_terminal:
                continue
            args = part.input if isinstance(part.input, dict) else {}
            model_parts.append(types.Part(
                function_call=types.FunctionCall(name=part.tool_name, args=args),
                thought_signature=_thought_signature(part),
            ))
            responses.append(types.Part.from_function_response(
                name=part.tool_name,
                response=_tool_response(part),
            ))
            continue

        text = _part_text(part)
        if not text:
            continue
        if responses:
            flush()
        model_parts.append(types.Part.from_text(text=text))

    flush()
    return contents


def convert_to_model_contents(messages: list[Message]) -> tuple[list[types.Content], Optional[str]]:
    """Convert UI messages into Gemini contents plus the combined system instruction."""
    contents: list[types.Content] = []
    system_texts = [SYSTEM_PROMPT] if SYSTEM_PROMPT else []

    for msg in messages:
        if msg.role == "system":
            system_texts.extend(t for t in (_part_text(p) for p in msg.parts) if t)
        elif msg.role == "user":
            parts = [types.Part.from_text(text=t) for t in (_part_text(p) for p in msg.parts) if t]
            if parts:
                contents.append(types.Content(role="user", parts=parts))
        else:
            contents.extend(_assistant_contents(msg))

    system_instruction = "\n\n".join(system_texts) if system_texts else None
    return contents, system_instruction


# ── SSE Helpers ────────────────────────────────────────────────────────────────

def _sse_event(event_type: str, data: dict | None = None) -> str:
    payload = {"type": event_type, **(data or {})}
    return f"event: {event_type}\ndata: {json.dumps(payload)}\n\n"


def _chunk_parts(chunk: types.GenerateContentResponse) -> list[types.Part]:
    if not chunk.candidates:
        return []
    content = chunk.candidates[0].content
    if content is None or not content.parts:
        return []
    return list(content.parts)


# ── Provider Calls ─────────────────────────────────────────────────────────────

def _open_step(
    client: genai.Client,
    contents: list[types.Content],
    config: types.GenerateContentConfig,
) -> Iterator[types.GenerateContentResponse]:
    """
    Start one streamed generation and pull its first chunk, so auth, quota and
    connectivity failures surface here as ProviderError instead of mid-stream.
    """
    try:
        chunks = iter(client.models.generate_content_stream(
            model=GEMINI_MODEL,
            contents=contents,
            config=config,
        ))
        first = next(chunks, None)
    except Exception as e:
        logger.error(
            "provider_request_failed",
            extra={"model": GEMINI_MODEL, "error": str(e), "type": type(e).__name__},
            exc_info=True,
        )
        raise ProviderError(str(e)) from e

    if first is None:
        return iter(())
    return itertools.chain([first], chunks)


def _run_tool_call(part: types.Part) -> Generator[str, None, tuple[str, dict]]:
    """Yield the tool lifecycle events for one call and return (name, function_response)."""
    call = part.function_call
    call_id = call.id or f"call-{uuid.uuid4().hex[:12]}"
    tool_name = call.name or ""
    tool_args = dict(call.args) if call.args else {}

    yield _sse_event("tool-input-start", {"toolCallId": call_id, "toolName": tool_name})
    available = {"toolCallId": call_id, "toolName": tool_name, "input": tool_args}
    if part.thought_signature:
        # Sent back by the client with the call on the next request
        available["providerMetadata"] = {
            "google": {"thoughtSignature": base64.b64encode(part.thought_signature).decode("ascii")},
        }
    yield _sse_event("tool-input-available", available)

    try:
        output = execute_tool(tool_name, tool_args)
    except ToolExecutionError as e:
        yield _sse_event("tool-output-error", {"toolCallId": call_id, "errorText": str(e)})
        return tool_name, {"error": str(e)}

    yield _sse_event("tool-output-available", {"toolCallId": call_id, "output": output})
    return tool_name, {"result": output}


def _relay(
    client: genai.Client,
    contents: list[types.Content],
    config: types.GenerateContentConfig,
    chunks: Iterable[types.GenerateContentResponse],
) -> Generator[str, None, None]:
    message_id = f"msg-{uuid.uuid4().hex}"
    yield _sse_event("start", {"messageId": message_id})

    try:
        for step in range(max(CHAT_MAX_STEPS, 1)):
            if step > 0:
                chunks = _open_step(client, contents, config)

            yield _sse_event("start-step")
            text_id: Optional[str] = None
            step_text: list[str] = []
            model_parts: list[types.Part] = []
            responses: list[types.Part] = []

            for chunk in chunks:
                for part in _chunk_parts(chunk):
                    if part.function_call:
                        if text_id is not None:
                            yield _sse_event("text-end", {"id": text_id})
                            text_id = None
                        # Keep the provider's own part so any thought signature goes back with it
                        model_parts.append(part)
                        tool_name, response = yield from _run_tool_call(part)
                        responses.append(types.Part.from_function_response(name=tool_name, response=response))
                    elif part.text and not part.thought:
                        if text_id is None:
                            text_id = f"txt-{uuid.uuid4().hex[:12]}"
                            yield _sse_event("text-start", {"id": text_id})
                        step_text.append(part.text)
                        yield _sse_event("text-delta", {"id": text_id, "delta": part.text})

            if text_id is not None:
                yield _sse_event("text-end", {"id": text_id})
            yield _sse_event("finish-step")

            if not responses:
                break

            if step_text:
                model_parts.insert(0, types.Part.from_text(text="".join(step_text)))
            contents.append(types.Content(role="model", parts=model_parts))
            contents.append(types.Content(role="user", parts=responses))
            logger.info("chat_step_completed", extra={"step": step, "tool_calls": len(responses)})

    except Exception as e:
        logger.error("chat_stream_failed", extra={"message_id": message_id, "error": str(e)}, exc_info=True)
        yield _sse_event("error", {"errorText": "The model provider failed while streaming the reply."})
        yield DONE_MARKER
        return

    yield _sse_event("finish")
    yield DONE_MARKER


# ── Entry Point ────────────────────────────────────────────────────────────────

def stream_chat(client: genai.Client, messages: list[Message]) -> Generator[str, None, None]:
    """
    Call the provider with the full history and the registered tools.
    The first provider step is opened before returning, so a failing provider raises
    ProviderError here; the returned generator yields the SSE body.
    """
    contents, system_instruction = convert_to_model_contents(messages)
    config = types.GenerateContentConfig(
        system_instruction=system_instruction,
        tools=agent_tools(),
        temperature=CHAT_TEMPERATURE,
    )
    logger.info("chat_stream_opening", extra={"model": GEMINI_MODEL, "messages": len(messages)})
    chunks = _open_step(client, contents, config)
    return _relay(client, contents, config, chunks)
