from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from voice_dispatch.services.chat import ChatResponse

FALLBACK_MESSAGE = "I've processed your request."


@dataclass(frozen=True)
class ToolCallRequest:
    call_id: str
    tool_name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    call_id: str
    tool_name: str
    content: str
    is_error: bool = False


@dataclass
class DispatchTurn:
    """One model round trip and the tool results it produced."""

    number: int
    response: "ChatResponse"
    tool_results: list[ToolResult] = field(default_factory=list)

    @property
    def tool_calls(self) -> list[ToolCallRequest]:
        return list(self.response.tool_calls)


@dataclass(frozen=True)
class DispatchMetadata:
    turn_count: int = 0
    tool_call_count: int = 0
    api_duration_ms: float = 0.0
    total_duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "turnCount": self.turn_count,
            "toolCallCount": self.tool_call_count,
            "apiDurationMs": round(self.api_duration_ms, 1),
            "totalDurationMs": round(self.total_duration_ms, 1),
        }


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    message: str
    metadata: DispatchMetadata = field(default_factory=DispatchMetadata)
    error_kind: str | None = None

    @classmethod
    def ok(cls, message: str, metadata: DispatchMetadata) -> "DispatchResult":
        return cls(success=True, message=message or FALLBACK_MESSAGE, metadata=metadata)

    @classmethod
    def failure(cls, error_kind: str, message: str, metadata: DispatchMetadata) -> "DispatchResult":
        return cls(success=False, message=message, metadata=metadata, error_kind=error_kind)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "metadata": self.metadata.to_dict(),
        }
        if not self.success:
            result["error_kind"] = self.error_kind
        return result
