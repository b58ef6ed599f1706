"""
OpenAI-compatible provider implementation using LangChain
"""

import time
from typing import Any, AsyncIterator, Dict, Optional, Sequence

import openai
from langchain_core.messages import BaseMessage, HumanMessage
from langchain_core.tools import BaseTool
from langchain_openai import ChatOpenAI

from adventure.errors import TransportError
from adventure.utils.logger import get_logger

from .base import BaseProvider, ModelCallParameters, StreamEvent, get_message_text

logger = get_logger(__name__)


class OpenAIProvider(BaseProvider):
    """Streaming provider for OpenAI and OpenAI-compatible APIs (OpenRouter)"""

    def __init__(self, api_base: str, api_key: str, model_name: str):
        super().__init__(api_base, api_key, model_name)
        self._models: Dict[str, ChatOpenAI] = {}
        logger.info(f"Initialized OpenAI provider at {api_base} (default model {model_name})")

    def _get_llm(self, model: str) -> ChatOpenAI:
        if model not in self._models:
            self._models[model] = ChatOpenAI(
                model=model,
                base_url=self.api_base,
                api_key=self.api_key,  # type: ignore
                streaming=True,
            )
        return self._models[model]

    def _build_runnable(
        self, params: ModelCallParameters, tools: Optional[Sequence[BaseTool]]
    ) -> Any:
        llm = self._get_llm(params.model or self.model_name)
        runnable: Any = llm.bind_tools(list(tools)) if tools else llm

        bind_kwargs: Dict[str, Any] = {"max_tokens": params.max_tokens}
        if params.stop_sequence:
            bind_kwargs["stop"] = [params.stop_sequence]
        if params.json_schema is not None:
            bind_kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": "Response",
                    "strict": True,
                    "schema": params.json_schema,
                },
            }
        elif params.json_output:
            bind_kwargs["response_format"] = {"type": "json_object"}
        if params.reasoning_effort:
            bind_kwargs["reasoning_effort"] = params.reasoning_effort

        return runnable.bind(**bind_kwargs)

    async def stream(
        self,
        messages: Sequence[BaseMessage],
        params: ModelCallParameters,
        tools: Optional[Sequence[BaseTool]] = None,
    ) -> AsyncIterator[StreamEvent]:
        call_id = self._log_llm_call(messages, params, tools)
        start_time = time.time()
        gathered: Any = None
        finish_reason: Optional[str] = None
        response_chars = 0

        try:
            async for chunk in self._build_runnable(params, tools).astream(list(messages)):
                gathered = chunk if gathered is None else gathered + chunk
                reason = (chunk.response_metadata or {}).get("finish_reason")
                if reason:
                    finish_reason = reason
                text = get_message_text(chunk)
                if text:
                    response_chars += len(text)
                    yield StreamEvent(text=text)
        except openai.APIError as e:
            duration_ms = round((time.time() - start_time) * 1000, 2)
            self._log_llm_response(call_id, params.model, duration_ms, error=e)
            raise TransportError(f"Model call to {params.model} failed: {e}") from e

        tool_calls = [dict(tc) for tc in getattr(gathered, "tool_calls", None) or []]
        duration_ms = round((time.time() - start_time) * 1000, 2)
        self._log_llm_response(
            call_id,
            params.model,
            duration_ms,
            response_chars=response_chars,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
        )
        yield StreamEvent(tool_calls=tool_calls, finish_reason=finish_reason, done=True)

    async def health_check(self) -> bool:
        """Check if the API is accessible"""
        try:
            await self._get_llm(self.model_name).ainvoke([HumanMessage(content="Hello")])
            return True
        except openai.APIError as e:
            logger.warning(f"Health check failed: {e}")
            return False
