from typing import TypedDict, Annotated, Optional, List, Any
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, START, END
from langgraph.graph.message import add_messages
import logging

logger = logging.getLogger(__name__)

LLM_NODE = "llm"


class State(TypedDict):
    messages: Annotated[list[BaseMessage], add_messages]
    system_prompt: Optional[str]


def to_langchain_messages(history: List[Any]) -> List[BaseMessage]:
    """Convert stored (role, content) turns into LangChain messages."""
    messages = []
    for role, content in history:
        if role == "user":
            messages.append(HumanMessage(content=content))
        elif role == "assistant":
            messages.append(AIMessage(content=content))
        else:
            logger.warning(f"Skipping message with unsupported role: {role}")
    return messages


def chunk_text(chunk: AIMessage) -> str:
    """Extract the text of a streamed chunk; some providers send content blocks."""
    content = chunk.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


async def llm(state: State, config: RunnableConfig):
    """Generate the assistant reply with the chat model bound for this request."""
    model = config["configurable"]["chat_model"]

    messages = []
    if state.get("system_prompt"):
        messages.append(SystemMessage(content=state["system_prompt"]))
    messages.extend(state["messages"])

    # config carries the streaming callbacks, so tokens surface in stream_mode="messages"
    response = await model.ainvoke(messages, config)

    return {"messages": [response]}


def build_chat_graph():
    """Compile the single-node chat graph. Persistence is handled by the thread service."""
    return (
        StateGraph(State)
        .add_node(LLM_NODE, llm)
        .add_edge(START, LLM_NODE)
        .add_edge(LLM_NODE, END)
        .compile()
    )
