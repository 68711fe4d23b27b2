import logging
import math
from dataclasses import dataclass
from typing import Any, Callable

from google.genai import types
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from streamchat.errors import ToolExecutionError

logger = logging.getLogger(__name__)


# ── squareRoot ──────────────────────────────────────────────────────────────────

class SquareRootInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    number: float = Field(ge=0, description="The non-negative number to take the square root of")
    decimal_places: int = Field(
        ge=0, le=10, alias="decimalPlaces",
        description="How many decimal places to round the result to (0-10)",
    )


class SquareRootOutput(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    result: float


def square_root(args: SquareRootInput) -> SquareRootOutput:
    return SquareRootOutput(result=round(math.sqrt(args.number), args.decimal_places))


# ── Tool Definitions ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_model: type[BaseModel]
    output_model: type[BaseModel]
    execute: Callable[[Any], BaseModel]

    def function_declaration(self) -> types.FunctionDeclaration:
        """Declare the tool to Gemini using the input model's JSON schema."""
        return types.FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters_json_schema=self.input_model.model_json_schema(by_alias=True),
        )


SQUARE_ROOT_TOOL = ToolDefinition(
    name="squareRoot",
    description="Calculate the square root of a non-negative number, rounded to a given number of decimal places.",
    input_model=SquareRootInput,
    output_model=SquareRootOutput,
    execute=square_root,
)

_TOOLS: dict[str, ToolDefinition] = {SQUARE_ROOT_TOOL.name: SQUARE_ROOT_TOOL}


def get_tool(name: str) -> ToolDefinition:
    tool = _TOOLS.get(name)
    if tool is None:
        raise ToolExecutionError(f"Unknown tool: {name}")
    return tool


def agent_tools() -> list[types.Tool]:
    return [types.Tool(function_declarations=[t.function_declaration() for t in _TOOLS.values()])]


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err["loc"]) or "input"
        problems.append(f"{location}: {err['msg']}")
    return "Invalid input: " + "; ".join(problems)


# ── Tool Execution ─────────────────────────────────────────────────────────────

def execute_tool(name: str, arguments: dict | None) -> dict:
    """
    Validate ``arguments`` against the tool's input schema and run it.
    Returns the output as a JSON-ready dict; raises ToolExecutionError on bad input.
    """
    tool = get_tool(name)
    try:
        parsed = tool.input_model.model_validate(arguments or {})
    except ValidationError as e:
        message = _format_validation_error(e)
        logger.info("tool_input_rejected", extra={"tool": name, "error": message})
        raise ToolExecutionError(message) from e

    try:
        result = tool.execute(parsed)
    except (ArithmeticError, ValueError) as e:
        logger.error("tool_execution_failed", extra={"tool": name, "error": str(e)})
        raise ToolExecutionError(str(e)) from e

    output = tool.output_model.model_validate(result).model_dump()
    logger.info("tool_executed", extra={"tool": name, "output": output})
    return output
