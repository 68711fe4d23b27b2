from typing import Any, Callable

from streamchat.models.chat import Message, TextPart, ToolCallPart, ToolCallState, UnknownPart

# Label used in front of a tool's result; tools not listed use their own name.
_RESULT_LABELS = {"squareRoot": "Square root"}


def _result_value(output: Any) -> str:
    if isinstance(output, dict) and "result" in output:
        return str(output["result"])
    return str(output)


def _render_input_streaming(part: ToolCallPart) -> str:
    return f"Preparing {part.tool_name} request..."


def _render_input_available(part: ToolCallPart) -> str:
    args = part.input if isinstance(part.input, dict) else {}
    if part.tool_name == "squareRoot" and "number" in args:
        places = args.get("decimalPlaces")
        suffix = f" with {int(places)} decimal places" if isinstance(places, (int, float)) else ""
        return f"Computing √{args['number']}{suffix}..."
    return f"Running {part.tool_name}..."


def _render_output_available(part: ToolCallPart) -> str:
    label = _RESULT_LABELS.get(part.tool_name, part.tool_name)
    return f"{label}: {_result_value(part.output)}"


def _render_output_error(part: ToolCallPart) -> str:
    return f"Error: {part.error_text}"


_TOOL_STATE_RENDERERS: dict[ToolCallState, Callable[[ToolCallPart], str]] = {
    ToolCallState.INPUT_STREAMING: _render_input_streaming,
    ToolCallState.INPUT_AVAILABLE: _render_input_available,
    ToolCallState.OUTPUT_AVAILABLE: _render_output_available,
    ToolCallState.OUTPUT_ERROR: _render_output_error,
}


def render_tool_call(part: ToolCallPart) -> str:
    """Render a tool part from its state alone; a state outside the enum renders empty."""
    renderer = _TOOL_STATE_RENDERERS.get(part.state)
    return renderer(part) if renderer else ""


def render_part(part: Any) -> str:
    if isinstance(part, TextPart):
        return part.text
    if isinstance(part, ToolCallPart):
        return render_tool_call(part)
    if isinstance(part, UnknownPart):
        if part.text:
            return part.text
        return part.content if isinstance(part.content, str) else ""
    # Anything else, including bare strings from older clients
    return part if isinstance(part, str) else ""


def render_message(message: Message) -> str:
    """
    Render all parts in order. Consecutive text parts run together; tool lines and
    other parts go on their own line.
    """
    lines: list[str] = []
    previous_was_text = False
    for part in message.parts:
        rendered = render_part(part)
        if not rendered:
            continue
        is_text = isinstance(part, TextPart)
        if is_text and previous_was_text:
            lines[-1] += rendered
        else:
            lines.append(rendered)
        previous_was_text = is_text
    return "\n".join(lines)


def render_conversation(messages: list[Message], error: str | None = None, is_submitting: bool = False) -> str:
    if not messages and not error:
        return "Start a conversation! Type a message below to begin chatting with the AI."

    blocks = []
    for message in messages:
        speaker = "You" if message.role == "user" else message.role.capitalize()
        blocks.append(f"{speaker}: {render_message(message)}")
    if is_submitting:
        blocks.append("Assistant: ...")
    if error:
        blocks.append(f"Something went wrong: {error}")
    return "\n\n".join(blocks)
