"""
Abstract base class for streaming LLM providers using LangChain
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Sequence

from langchain_core.messages import BaseMessage
from langchain_core.tools import BaseTool
from pydantic import BaseModel, Field

from adventure.utils.logger import get_logger

logger = get_logger(__name__)


class ModelCallParameters(BaseModel):
    """Per-phase parameters of a model call"""

    model: str
    max_tokens: int = 1000
    stop_sequence: str = ""
    json_output: bool = False
    json_schema: Optional[Dict[str, Any]] = None
    reasoning_effort: Optional[Literal["low", "medium", "high"]] = None


class StreamEvent(BaseModel):
    """
    One item of a streamed model response.

    Text deltas arrive with ``text`` set. The last event has ``done`` set and
    carries the aggregated tool calls and the finish reason.
    """

    text: str = ""
    tool_calls: List[Dict[str, Any]] = Field(default_factory=list)
    finish_reason: Optional[str] = None
    done: bool = False


def get_message_text(message: BaseMessage) -> str:
    """
    Get message content as string, handling both string and list formats.

    LangChain messages can have content as either a string or a list of
    content blocks; only text blocks are kept.
    """
    content = message.content
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text", "")))
        return "".join(parts)
    return str(content)


class BaseProvider(ABC):
    """Abstract base class for LLM providers using LangChain"""

    def __init__(self, api_base: str, api_key: str, model_name: str):
        self.api_base = api_base
        self.api_key = api_key
        self.model_name = model_name

    def _log_llm_call(
        self,
        messages: Sequence[BaseMessage],
        params: ModelCallParameters,
        tools: Optional[Sequence[BaseTool]] = None,
    ) -> str:
        """Log LLM call details and return a call ID for correlation"""
        call_id = str(uuid.uuid4())[:8]
        message_counts: Dict[str, int] = {}
        total_chars = 0
        for msg in messages:
            msg_type = type(msg).__name__
            message_counts[msg_type] = message_counts.get(msg_type, 0) + 1
            total_chars += len(get_message_text(msg))

        logger.info(
            f"[LLM] Call started: {params.model}",
            extra={
                "component": "LLM",
                "call_id": call_id,
                "model": params.model,
                "provider": self.__class__.__name__,
                "message_count": len(messages),
                "message_types": message_counts,
                "total_input_chars": total_chars,
                "max_tokens": params.max_tokens,
                "json_output": params.json_output or params.json_schema is not None,
                "tool_count": len(tools) if tools else 0,
            },
        )
        return call_id

    def _log_llm_response(
        self,
        call_id: str,
        model: str,
        duration_ms: float,
        response_chars: int = 0,
        tool_calls: Optional[List[Dict[str, Any]]] = None,
        finish_reason: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> None:
        """Log LLM response details"""
        if error:
            logger.error(
                f"[LLM] Call failed: {model} ({duration_ms}ms): {error}",
                extra={
                    "component": "LLM",
                    "call_id": call_id,
                    "model": model,
                    "provider": self.__class__.__name__,
                    "duration_ms": duration_ms,
                    "error": str(error),
                    "error_type": type(error).__name__,
                },
            )
            return

        logger.info(
            f"[LLM] Call completed: {model} ({duration_ms}ms, finish_reason={finish_reason})",
            extra={
                "component": "LLM",
                "call_id": call_id,
                "model": model,
                "provider": self.__class__.__name__,
                "duration_ms": duration_ms,
                "response_chars": response_chars,
                "tool_calls": [
                    {"id": tc.get("id"), "name": tc.get("name")} for tc in tool_calls or []
                ],
                "finish_reason": finish_reason,
            },
        )

    @abstractmethod
    def stream(
        self,
        messages: Sequence[BaseMessage],
        params: ModelCallParameters,
        tools: Optional[Sequence[BaseTool]] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream one model call.

        Args:
            messages: Conversation including the system message
            params: Model id, token limit, stop sequence and output constraints
            tools: Optional LangChain tools the model may call

        Yields:
            StreamEvent items; the final one has ``done`` set

        Raises:
            TransportError: when the provider cannot be reached or rejects the call
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the provider is healthy and accessible"""
