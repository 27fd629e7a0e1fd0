from .chat_request import ChatRequest

__all__ = ["ChatRequest"]
