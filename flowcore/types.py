from dataclasses import dataclass, field


@dataclass
class ToolResult:
    success: bool
    content: str
    data: dict | list | None = None
    error: str | None = None
    error_code: str | None = None
    metadata: dict = field(default_factory=dict)


class ErrorCode:
    VALIDATION_ERROR = "validation_error"
    INVALID_ARGUMENTS = "invalid_arguments"
    TIMEOUT = "timeout"
    TOOL_EXCEPTION = "tool_exception"


class InferenceError(Exception):
    """Base class for errors that end an inference turn."""


class EmptyResponseError(InferenceError):
    def __init__(self, message: str = "No response from model.") -> None:
        super().__init__(message)


class UnknownToolError(InferenceError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unable to process tool request with name: {name}")
        self.name = name


class ConversationNotFoundError(InferenceError):
    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id
