"""Page tools exposed to the model."""

from .calls import (
    ReadEditableContentCall,
    ReadPageChunksCall,
    ToolCall,
    UnknownToolCall,
    WriteEditableContentCall,
    parse_tool_call,
)
from .declarations import ASK_TOOLS, EDIT_TOOLS, tools_for_mode
from .dispatcher import ToolDispatcher, ToolExecutionResult, function_response_part
from .errors import (
    ErrorCode,
    InvalidToolArgumentsError,
    NoActiveTabError,
    PageWriteError,
    ToolError,
    ToolUnavailableError,
    UnknownToolError,
)

__all__ = [
    "ASK_TOOLS",
    "EDIT_TOOLS",
    "tools_for_mode",
    "ReadPageChunksCall",
    "ReadEditableContentCall",
    "WriteEditableContentCall",
    "UnknownToolCall",
    "ToolCall",
    "parse_tool_call",
    "ToolDispatcher",
    "ToolExecutionResult",
    "function_response_part",
    "ErrorCode",
    "ToolError",
    "UnknownToolError",
    "InvalidToolArgumentsError",
    "NoActiveTabError",
    "ToolUnavailableError",
    "PageWriteError",
]
