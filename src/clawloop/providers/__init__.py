"""Provider implementations."""

from .anthropic import AnthropicProvider
from .base import Provider
from .mock import MockProvider
from .models import (
    ChatOptions,
    Message,
    Response,
    StreamEvent,
    ToolCall,
    ToolDefinition,
    Usage,
)
from .openrouter import OpenRouterProvider

__all__ = [
    "AnthropicProvider",
    "ChatOptions",
    "Message",
    "MockProvider",
    "OpenRouterProvider",
    "Provider",
    "Response",
    "StreamEvent",
    "ToolCall",
    "ToolDefinition",
    "Usage",
]
