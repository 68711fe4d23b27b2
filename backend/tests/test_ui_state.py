import httpx
import pytest
from fastapi.testclient import TestClient

from fakes import FakeClient, ScriptedTransport, call_chunk, text_chunk
from streamchat.errors import ChatStreamError
from streamchat.main import app
from streamchat.models.chat import Message, TextPart, ToolCallPart, ToolCallState
from streamchat.ui.render import render_message
from streamchat.ui.state import (
    ChatSession,
    MessageStreamReducer,
    last_assistant_message_is_complete_with_tool_calls,
)
from streamchat.ui.transport import ChatTransport, parse_sse

TEXT_REPLY = [
    {"type": "start", "messageId": "msg-1"},
    {"type": "start-step"},
    {"type": "text-start", "id": "t1"},
    {"type": "text-delta", "id": "t1", "delta": "Hel"},
    {"type": "text-delta", "id": "t1", "delta": "lo"},
    {"type": "text-end", "id": "t1"},
    {"type": "finish-step"},
    {"type": "finish"},
]

def tool_reply(call_id="c1"):
    return [
        {"type": "start", "messageId": "msg-2"},
        {"type": "start-step"},
        {"type": "tool-input-start", "toolCallId": call_id, "toolName": "squareRoot"},
        {"type": "tool-input-available", "toolCallId": call_id, "toolName": "squareRoot",
         "input": {"number": 2, "decimalPlaces": 4}},
        {"type": "tool-output-available", "toolCallId": call_id, "output": {"result": 1.4142}},
        {"type": "finish-step"},
        {"type": "finish"},
    ]


def _assistant(*parts):
    return Message(id="a", role="assistant", parts=list(parts))


def _tool(state, **values):
    return ToolCallPart(type="tool-squareRoot", tool_call_id="c1", state=state, **values)


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_blank_submit_is_a_no_op(text):
    transport = ScriptedTransport()
    session = ChatSession(transport)

    assert session.submit(text) is False
    assert session.messages == []
    assert transport.sent == []


def test_submit_appends_user_message_before_assistant_content():
    seen = []

    def on_event(message, event):
        seen.append((len(session.messages), session.messages[0].role, session.is_submitting))

    transport = ScriptedTransport(TEXT_REPLY)
    session = ChatSession(transport, on_event=on_event)
    session.draft_input = "hi there"

    assert session.submit() is True

    assert seen[0] == (2, "user", True)
    assert transport.sent[0][0].parts[0].text == "hi there"
    assert len(transport.sent[0]) == 1
    assert [m.role for m in session.messages] == ["user", "assistant"]
    assert session.messages[1].id == "msg-1"
    assert render_message(session.messages[1]) == "Hello"
    assert session.draft_input == ""
    assert session.is_submitting is False
    assert session.error is None


def test_submit_while_in_flight_is_rejected():
    results = []

    def on_event(message, event):
        if event["type"] == "text-delta":
            results.append(session.submit("again"))

    transport = ScriptedTransport(TEXT_REPLY)
    session = ChatSession(transport, on_event=on_event)
    session.submit("first")

    assert results == [False, False]
    assert len(transport.sent) == 1
    assert len(session.messages) == 2


def test_tool_only_turn_continues_automatically():
    transport = ScriptedTransport(tool_reply(), TEXT_REPLY)
    session = ChatSession(transport)

    session.submit("square root of 2?")

    assert len(transport.sent) == 2
    resent = transport.sent[1]
    assert [m.role for m in resent] == ["user", "assistant"]
    assert resent[1].parts[-1].state is ToolCallState.OUTPUT_AVAILABLE
    # The continuation extends the same assistant message
    assert len(session.messages) == 2
    assert render_message(session.messages[1]) == "Square root: 1.4142\nHello"


def test_auto_continue_is_bounded():
    transport = ScriptedTransport(tool_reply("c1"), tool_reply("c2"), tool_reply("c3"))
    session = ChatSession(transport, max_auto_continuations=2)

    session.submit("loop")

    assert len(transport.sent) == 3


def test_error_event_surfaces_on_session():
    transport = ScriptedTransport([{"type": "start"}, {"type": "error", "errorText": "provider down"}])
    session = ChatSession(transport)

    assert session.submit("hello") is True

    assert session.error == "provider down"
    assert session.is_submitting is False


def test_predicate_requires_finished_tools_in_last_step():
    step = {"type": "step-start"}
    done = _tool(ToolCallState.OUTPUT_AVAILABLE, output={"result": 1.0})
    failed = _tool(ToolCallState.OUTPUT_ERROR, error_text="bad")
    pending = _tool(ToolCallState.INPUT_AVAILABLE, input={"number": 1})
    user = Message(id="u", role="user", parts=[TextPart(text="hi")])

    def msg(*parts):
        return Message.model_validate({"id": "a", "role": "assistant", "parts": [
            p if isinstance(p, dict) else p.model_dump(by_alias=True) for p in parts
        ]})

    assert last_assistant_message_is_complete_with_tool_calls([user, msg(step, done)])
    assert last_assistant_message_is_complete_with_tool_calls([user, msg(step, failed)])
    assert not last_assistant_message_is_complete_with_tool_calls([])
    assert not last_assistant_message_is_complete_with_tool_calls([user])
    assert not last_assistant_message_is_complete_with_tool_calls([user, msg(step, pending)])
    assert not last_assistant_message_is_complete_with_tool_calls([user, msg(step, {"type": "text", "text": "ok"})])
    # Only the last step counts
    assert not last_assistant_message_is_complete_with_tool_calls(
        [user, msg(step, done, step, {"type": "text", "text": "It is 1."})]
    )


def test_reducer_ignores_state_regressions():
    message = _assistant()
    reducer = MessageStreamReducer(message)
    for event in tool_reply():
        reducer.apply(event)
    reducer.apply({"type": "tool-input-available", "toolCallId": "c1", "input": {"number": 3}})

    (step, part) = message.parts
    assert part.state is ToolCallState.OUTPUT_AVAILABLE
    assert part.input == {"number": 2, "decimalPlaces": 4}


def test_reducer_raises_on_error_event():
    with pytest.raises(ChatStreamError, match="boom"):
        MessageStreamReducer(_assistant()).apply({"type": "error", "errorText": "boom"})


def test_parse_sse_requires_done_marker():
    body = 'event: start\ndata: {"type": "start"}\n\n'
    with pytest.raises(ChatStreamError):
        list(parse_sse(body.splitlines()))

    assert list(parse_sse((body + "data: [DONE]\n\n").splitlines())) == [{"type": "start"}]


@pytest.mark.parametrize("data", ["not json", "{\"type\": ", "5"])
def test_parse_sse_rejects_malformed_events(data):
    body = f"data: {data}\n\ndata: [DONE]\n\n"
    with pytest.raises(ChatStreamError, match="malformed"):
        list(parse_sse(body.splitlines()))


def test_malformed_stream_surfaces_on_session():
    def handler(request):
        return httpx.Response(200, text="data: not json\n\ndata: [DONE]\n\n")

    transport = ChatTransport(api="http://chat.test/api/chat", client=httpx.Client(transport=httpx.MockTransport(handler)))
    session = ChatSession(transport)

    assert session.submit("hi") is True

    assert "malformed" in session.error
    assert session.is_submitting is False
    assert [m.role for m in session.messages] == ["user"]


def test_transport_reports_error_envelope():
    def handler(request):
        return httpx.Response(502, json={"error": "Upstream model provider error"})

    transport = ChatTransport(api="http://chat.test/api/chat", client=httpx.Client(transport=httpx.MockTransport(handler)))

    with pytest.raises(ChatStreamError, match="Upstream model provider error"):
        list(transport.stream([]))


def test_session_against_the_real_endpoint(use_provider):
    use_provider(FakeClient(
        [call_chunk("squareRoot", {"number": 2, "decimalPlaces": 4})],
        [text_chunk("The square root of 2 is "), text_chunk("about 1.4142.")],
    ))
    session = ChatSession(ChatTransport(api="/api/chat", client=TestClient(app)))

    session.submit("What is the square root of 2?")

    assert session.error is None
    assert len(session.messages) == 2
    assert render_message(session.messages[1]) == "Square root: 1.4142\nThe square root of 2 is about 1.4142."
