"""
Chat relay: runs one user turn against the chat graph and streams the reply.

Requests are validated by prepare_turn before any response is sent. A
streamed turn then moves through the TurnState steps in order, and a failure
at any of them ends the stream with a single error frame.

The user message is committed before the first frame is produced. The
assistant message is committed only after the model stream completes, so a
reply abandoned by a provider error or a client disconnect is not stored.
Two concurrent turns on the same thread are not serialized; their messages
may interleave.
"""
import enum
import json
import logging
from contextlib import aclosing, closing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

from langchain_core.messages import AIMessage
from sqlalchemy.orm import sessionmaker

from config import Settings
from dtos.chat_request import ChatRequest
from exceptions import ChatServiceError, UpstreamProviderError, ValidationError
from graph import LLM_NODE, chunk_text, to_langchain_messages
from models.threads import Thread, utcnow
from schemas.threads import ThreadCreate
from services.providers import ProviderRegistry, resolve_model
from services.threads import ThreadService, normalize_content

logger = logging.getLogger(__name__)


class TurnState(enum.Enum):
    PERSISTING_USER_TURN = "persisting_user_turn"
    RESOLVING_MODEL = "resolving_model"
    STREAMING = "streaming"
    PERSISTING_ASSISTANT_TURN = "persisting_assistant_turn"
    DONE = "done"


@dataclass
class Turn:
    """A validated turn, ready to stream."""
    message: str
    thread_id: str
    owner_id: str
    model_id: str
    system_prompt: str
    temperature: float


def encode_frame(frame: Dict[str, Any]) -> str:
    """Serialize one frame as a newline-terminated JSON line."""
    return json.dumps(frame) + "\n"


def chunk_frame(content: str) -> str:
    return encode_frame({"type": "chunk", "content": content})


def done_frame(thread_id: str, model_id: str) -> str:
    return encode_frame({"type": "done", "threadId": thread_id, "modelId": model_id})


def error_frame(message: str) -> str:
    return encode_frame({"type": "error", "error": message})


class ChatRelay:
    """Relays model output for a thread while keeping the session store in step."""

    def __init__(self, session_factory: sessionmaker, registry: ProviderRegistry, graph, settings: Settings):
        self.session_factory = session_factory
        self.registry = registry
        self.graph = graph
        self.settings = settings

    def start_thread(self, owner_id: str, model_id: Optional[str] = None) -> Thread:
        """Create an empty thread that records the model it was started with."""
        metadata = {
            "modelId": model_id or self.settings.default_model_id,
            "createdAt": utcnow().isoformat(),
        }
        with closing(self.session_factory()) as db:
            return ThreadService.create_thread(db, owner_id, ThreadCreate(metadata=metadata))

    def prepare_turn(self, request: ChatRequest, owner_id: str) -> Turn:
        """Validate a chat request. Raises ValidationError before any streaming starts."""
        if not request.message or not request.message.strip():
            raise ValidationError("Message is required")
        if not request.thread_id:
            raise ValidationError("Thread ID is required")

        return Turn(
            message=request.message,
            thread_id=request.thread_id,
            owner_id=owner_id,
            model_id=request.model_id or self.settings.default_model_id,
            system_prompt=request.system_prompt or self.settings.default_system_prompt,
            temperature=(
                request.temperature if request.temperature is not None
                else self.settings.default_temperature
            ),
        )

    async def stream_turn(self, turn: Turn) -> AsyncIterator[str]:
        """Yield the frames for one turn, always ending in a done or error frame."""
        state = TurnState.PERSISTING_USER_TURN
        try:
            with closing(self.session_factory()) as db:
                ThreadService.append_message(db, turn.thread_id, turn.owner_id, "user", turn.message)
                history = [
                    (m.role, normalize_content(m.content))
                    for m in ThreadService.get_messages(
                        db, turn.thread_id, last=self.settings.memory_last_messages
                    )
                ]

            state = TurnState.RESOLVING_MODEL
            binding = resolve_model(turn.model_id)
            chat_model = self.registry.chat_model(binding, turn.temperature, self.settings.max_tokens)

            state = TurnState.STREAMING
            parts = []
            inputs = {
                "messages": to_langchain_messages(history),
                "system_prompt": turn.system_prompt,
            }
            config = {"configurable": {"chat_model": chat_model}}

            try:
                async with aclosing(self.graph.astream(inputs, config, stream_mode="messages")) as stream:
                    async for message, metadata in stream:
                        if not isinstance(message, AIMessage):
                            continue
                        if metadata.get("langgraph_node") != LLM_NODE:
                            continue
                        text = chunk_text(message)
                        if not text:
                            continue
                        parts.append(text)
                        yield chunk_frame(text)
            except ChatServiceError:
                raise
            except Exception as e:
                raise UpstreamProviderError(str(e) or "Streaming error") from e

            state = TurnState.PERSISTING_ASSISTANT_TURN
            with closing(self.session_factory()) as db:
                ThreadService.append_message(db, turn.thread_id, turn.owner_id, "assistant", "".join(parts))

            state = TurnState.DONE
            logger.info(f"Completed turn on thread {turn.thread_id} with {turn.model_id} ({len(parts)} chunks)")
            yield done_frame(turn.thread_id, turn.model_id)

        except ChatServiceError as e:
            logger.error(f"Turn on thread {turn.thread_id} failed while {state.value}: {e.message}")
            yield error_frame(e.message)
        except Exception as e:
            logger.exception(f"Unexpected error on thread {turn.thread_id} while {state.value}")
            yield error_frame(str(e) or "Streaming error")
