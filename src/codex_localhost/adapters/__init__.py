"""Response adapters turning run outcomes into HTTP replies."""

from .chat import models_list, render_chat, should_stream, stream_chat
from .plain import PlainResponse, render_plain

__all__ = [
    "render_plain",
    "PlainResponse",
    "render_chat",
    "stream_chat",
    "should_stream",
    "models_list",
]
