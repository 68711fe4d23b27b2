from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator, model_validator

TOOL_PART_PREFIX = "tool-"


class ToolCallState(str, Enum):
    INPUT_STREAMING = "input-streaming"
    INPUT_AVAILABLE = "input-available"
    OUTPUT_AVAILABLE = "output-available"
    OUTPUT_ERROR = "output-error"

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (ToolCallState.OUTPUT_AVAILABLE, ToolCallState.OUTPUT_ERROR)

    def can_advance_to(self, other: "ToolCallState") -> bool:
        """States only move forward; the two output states are both final."""
        if self.is_terminal:
            return False
        return other.rank >= self.rank


_STATE_RANK = {
    ToolCallState.INPUT_STREAMING: 0,
    ToolCallState.INPUT_AVAILABLE: 1,
    ToolCallState.OUTPUT_AVAILABLE: 2,
    ToolCallState.OUTPUT_ERROR: 2,
}


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""


class ToolCallPart(BaseModel):
    """One tool invocation, tagged ``tool-<toolName>`` on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    tool_call_id: str = Field(alias="toolCallId")
    state: ToolCallState
    input: Optional[Any] = None
    output: Optional[Any] = None
    error_text: Optional[str] = Field(default=None, alias="errorText")
    # Provider data that must go back with the call, e.g. {"google": {"thoughtSignature": "<base64>"}}
    call_provider_metadata: Optional[dict[str, Any]] = Field(default=None, alias="callProviderMetadata")

    @field_validator("type")
    @classmethod
    def _tool_prefix(cls, value: str) -> str:
        if not value.startswith(TOOL_PART_PREFIX) or len(value) == len(TOOL_PART_PREFIX):
            raise ValueError(f"tool part type must look like 'tool-<name>', got {value!r}")
        return value

    @model_validator(mode="after")
    def _output_matches_state(self) -> "ToolCallPart":
        if (self.output is not None) != (self.state == ToolCallState.OUTPUT_AVAILABLE):
            raise ValueError("output is present only when state is output-available")
        if (self.error_text is not None) != (self.state == ToolCallState.OUTPUT_ERROR):
            raise ValueError("errorText is present only when state is output-error")
        return self

    @property
    def tool_name(self) -> str:
        return self.type[len(TOOL_PART_PREFIX):]

    def advance(
        self,
        state: ToolCallState,
        *,
        input: Any = None,
        output: Any = None,
        error_text: Optional[str] = None,
    ) -> None:
        """Move to ``state``, refusing to go backwards or leave a final state."""
        if not self.state.can_advance_to(state):
            raise ValueError(f"tool call {self.tool_call_id}: cannot go from {self.state.value} to {state.value}")
        self.state = state
        if input is not None:
            self.input = input
        if state == ToolCallState.OUTPUT_AVAILABLE:
            self.output = output
        elif state == ToolCallState.OUTPUT_ERROR:
            self.error_text = error_text or "Tool execution failed"


class UnknownPart(BaseModel):
    """Any part type this app does not model (step-start, reasoning, ...)."""

    model_config = ConfigDict(extra="allow")

    type: str
    text: Optional[str] = None
    content: Optional[Any] = None


def _part_tag(value: Any) -> str:
    part_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    if part_type == "text":
        return "text"
    if isinstance(part_type, str) and part_type.startswith(TOOL_PART_PREFIX):
        return "tool"
    return "unknown"


Part = Annotated[
    Union[
        Annotated[TextPart, Tag("text")],
        Annotated[ToolCallPart, Tag("tool")],
        Annotated[UnknownPart, Tag("unknown")],
    ],
    Discriminator(_part_tag),
]


class Message(BaseModel):
    id: str
    role: Literal["user", "assistant", "system"]
    parts: list[Part] = Field(default_factory=list)


# ── Request schema for API ───────────────────────────────────────────────────

class ChatRequest(BaseModel):
    messages: list[Message]
