"""
Phase framework: one model round-trip with its own validation and retry loop
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set

from langchain_core.messages import AIMessage, HumanMessage
from langchain_core.tools import BaseTool
from pydantic import BaseModel

from adventure.config import Settings, settings
from adventure.engine.conversation import Conversation
from adventure.engine.memory import MemoryManager
from adventure.engine.prompt_resolver import PromptResolver
from adventure.engine.state import AdventureState
from adventure.engine.tools import MemoryTools
from adventure.errors import TransportError
from adventure.providers.base import BaseProvider, ModelCallParameters, StreamEvent
from adventure.schemas import TurnValidationResult
from adventure.utils.logger import get_logger

logger = get_logger(__name__)

OnTurnUpdated = Callable[[], None]

WRONG_FORMAT_MESSAGE = (
    "Wrong output format. The message was discarded. Re-generate the response. "
    "Don't perform reasoning or write free-form text, output only the response."
)


class PhaseConfig(BaseModel):
    """Static description of a phase"""

    agent_name: str
    prompts: List[str]
    llm_parameters: ModelCallParameters
    prefill: str = ""
    retry_count: int = 3
    save_message_to_history: bool = True
    use_tools: bool = False


@dataclass
class TurnContext:
    """Collaborators shared by the phases of a session"""

    provider: BaseProvider
    state: AdventureState
    memory: MemoryManager
    tools: MemoryTools
    prompts: PromptResolver
    config: Settings = field(default_factory=lambda: settings)
    # Turns whose text is already in the prompt
    visible_turns: Set[int] = field(default_factory=set)


class AdventurePhase(ABC):
    """Base class for phases. Subclasses build context in prepare() and validate in parse()."""

    def __init__(self, context: TurnContext, config: PhaseConfig):
        self.context = context
        self.config = config
        self.accumulated_response = ""

    @property
    def state(self) -> AdventureState:
        return self.context.state

    @property
    def name(self) -> str:
        return self.config.agent_name

    def should_run(self) -> bool:
        return True

    def system_prompt(self) -> str:
        return "".join(
            self.context.prompts.resolve(name, self.state.parameters) for name in self.config.prompts
        )

    def resolve_prompt(self, name: str) -> str:
        return self.context.prompts.resolve(name, self.state.parameters)

    def prepare(self, conversation: Conversation) -> None:
        """Add the phase's context messages"""

    def on_text_chunk(self, chunk: str, on_turn_updated: OnTurnUpdated) -> None:
        self.accumulated_response += chunk

    @abstractmethod
    async def parse(self) -> TurnValidationResult:
        """Validate the accumulated response and apply its effects when valid"""

    def finalize_history(self, conversation: Conversation) -> None:
        """Adjust the conversation after a successful attempt"""

    async def run(
        self, conversation: Conversation, on_turn_updated: OnTurnUpdated
    ) -> TurnValidationResult:
        """
        Run the phase until a response validates or the retry budget is spent.

        The conversation is restored to its state before the phase on success,
        then the response is optionally appended as a named assistant message.

        Raises:
            TransportError: when the provider keeps failing within a model round
        """
        previous_messages = conversation.snapshot()
        conversation.set_system(self.system_prompt())
        self.prepare(conversation)

        result = TurnValidationResult()
        for attempt in range(1, self.config.retry_count + 1):
            logger.info(f"[Phase] {self.name}: attempt {attempt}/{self.config.retry_count}")
            if self.config.prefill:
                conversation.add(AIMessage(content=self.config.prefill))
            self.accumulated_response = self.config.prefill

            await self._query(conversation, on_turn_updated)

            stop_sequence = self.config.llm_parameters.stop_sequence
            if stop_sequence and stop_sequence not in self.accumulated_response:
                self.accumulated_response += stop_sequence

            result = TurnValidationResult()
            if not self.accumulated_response.strip():
                result.add_error("Response is empty", kind="empty_response")
            else:
                try:
                    result = await self.parse()
                except TransportError:
                    raise
                except Exception as e:
                    logger.exception(f"[Phase] {self.name}: unexpected error while parsing")
                    result.add_error(f"Failed to parse response: {e}")

            if result.is_failed():
                logger.warning(f"[Phase] {self.name}: errors in response: {result.messages()}")
                conversation.add(
                    HumanMessage(
                        name="Developer",
                        content=json.dumps(
                            {"error": WRONG_FORMAT_MESSAGE, "errorDetails": result.messages()},
                            ensure_ascii=False,
                        ),
                    )
                )
                continue

            conversation.restore(previous_messages)
            if self.config.save_message_to_history:
                conversation.add(AIMessage(name=self.name, content=self.accumulated_response))
            self.finalize_history(conversation)
            logger.info(f"[Phase] {self.name}: completed on attempt {attempt}")
            return result

        logger.error(
            f"[Phase] {self.name}: failed after {self.config.retry_count} attempts: {result.messages()}"
        )
        return result

    async def _query(self, conversation: Conversation, on_turn_updated: OnTurnUpdated) -> None:
        """Model rounds until the model stops without requesting tools"""
        tools: Optional[List[BaseTool]] = self.context.tools.tools if self.config.use_tools else None
        max_rounds = self.context.config.max_model_rounds

        for round_number in range(1, max_rounds + 1):
            round_start = len(self.accumulated_response)
            final = await self._stream_round(conversation, tools, on_turn_updated, round_start)
            text = self.accumulated_response[round_start:]

            if text or final.tool_calls:
                conversation.add(AIMessage(content=text, tool_calls=final.tool_calls))
            for tool_call in final.tool_calls:
                conversation.add(await self.context.tools.execute(tool_call))

            if not final.tool_calls and final.finish_reason != "length":
                return

        logger.warning(f"[Phase] {self.name}: stopped after {max_rounds} model rounds")

    async def _stream_round(
        self,
        conversation: Conversation,
        tools: Optional[Sequence[BaseTool]],
        on_turn_updated: OnTurnUpdated,
        round_start: int,
    ) -> StreamEvent:
        retry_count = self.context.config.transport_retry_count
        attempt = 0
        while True:
            attempt += 1
            try:
                final = StreamEvent(done=True)
                async for event in self.context.provider.stream(
                    conversation.messages, self.config.llm_parameters, tools
                ):
                    if event.text:
                        self.on_text_chunk(event.text, on_turn_updated)
                    if event.done:
                        final = event
                return final
            except TransportError as e:
                self.accumulated_response = self.accumulated_response[:round_start]
                if attempt >= retry_count:
                    raise
                logger.warning(
                    f"[Phase] {self.name}: transport error (attempt {attempt}/{retry_count}): {e}"
                )
