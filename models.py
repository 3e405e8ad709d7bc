import json
from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Discriminator, Field, Tag, field_validator

from errors import ArgumentParseError

# Raw Hacker News item record plus the derived `permalink` field.
Item = Dict[str, Any]


class FunctionCall(BaseModel):
    name: str
    arguments: str = ""


class TextMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = ""


class FunctionCallMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: Optional[str] = None
    function_call: FunctionCall


class FunctionResultMessage(BaseModel):
    role: Literal["function"] = "function"
    name: str
    content: str

    @field_validator("role", mode="before")
    @classmethod
    def _tool_role_is_function(cls, value: Any) -> Any:
        # "tool" is accepted as an alias of "function"
        return "function" if value == "tool" else value


def _message_kind(value: Any) -> str:
    if isinstance(value, dict):
        role, function_call = value.get("role"), value.get("function_call")
    else:
        role, function_call = getattr(value, "role", None), getattr(value, "function_call", None)
    if role in ("function", "tool"):
        return "function_result"
    if function_call:
        return "function_call"
    return "text"


Message = Annotated[
    Union[
        Annotated[TextMessage, Tag("text")],
        Annotated[FunctionCallMessage, Tag("function_call")],
        Annotated[FunctionResultMessage, Tag("function_result")],
    ],
    Discriminator(_message_kind),
]


def to_provider_dict(message: BaseModel) -> Dict[str, Any]:
    return message.model_dump(exclude_none=True)


class ChatRequest(BaseModel):
    messages: List[Message] = Field(..., min_length=1, description="Conversation so far, oldest first")


class ToolCall(BaseModel):
    name: str
    arguments: Dict[str, Any] = {}

    @classmethod
    def from_function_call(cls, function_call: FunctionCall) -> "ToolCall":
        raw = function_call.arguments
        if not raw or not raw.strip():
            return cls(name=function_call.name, arguments={})
        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ArgumentParseError(function_call.name, raw) from e
        if not isinstance(arguments, dict):
            raise ArgumentParseError(function_call.name, raw)
        return cls(name=function_call.name, arguments=arguments)


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    limit: int
    remaining: int
    reset: int  # epoch milliseconds

    @staticmethod
    def open() -> "AdmissionDecision":
        return AdmissionDecision(allowed=True, limit=0, remaining=0, reset=0)

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }
