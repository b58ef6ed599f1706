"""
Adventure session: one running adventure with its state, memory and hooks
"""

import asyncio
import uuid
from typing import Callable, List, Optional

from langchain_core.embeddings import Embeddings

from adventure.config import Settings, settings
from adventure.db.manager import AdventureStorage
from adventure.engine.memory import MemoryManager
from adventure.engine.orchestrator import TurnOrchestrator
from adventure.engine.phase import TurnContext
from adventure.engine.prompt_resolver import PromptResolver
from adventure.engine.state import DEFAULT_FIRST_INPUT, FIRST_INPUT, AdventureState
from adventure.engine.tools import MemoryTools
from adventure.providers.base import BaseProvider
from adventure.schemas import (
    EntityUpdate,
    ImageRole,
    ImageUpdate,
    StoryStartingParameters,
    Turn,
    TurnFeedback,
    TurnValidationResult,
    UserInput,
)
from adventure.utils.logger import get_logger

logger = get_logger(__name__)

FIRST_ACTION_PREFIX = "[first action from automated system]: "


class AdventureSession:
    """
    An adventure driven turn by turn.

    Collaborators subscribe by appending callbacks to ``on_turn_updated``,
    ``on_image_requested`` and ``on_llm_running_changed``. Only one turn runs
    at a time; a turn requested while another is running fails immediately.
    """

    def __init__(
        self,
        provider: BaseProvider,
        embeddings: Embeddings,
        storage: Optional[AdventureStorage] = None,
        config: Settings = settings,
        prompts: Optional[PromptResolver] = None,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.config = config
        self.storage = storage
        self.state = AdventureState()
        self.memory = MemoryManager(self.session_id, embeddings, config)
        self.tools = MemoryTools(self.state, self.memory, config)
        self.context = TurnContext(
            provider=provider,
            state=self.state,
            memory=self.memory,
            tools=self.tools,
            prompts=prompts or PromptResolver(config.prompts_dir),
            config=config,
        )
        self.orchestrator = TurnOrchestrator(self.context, self._emit_turn_updated)

        self.on_turn_updated: List[Callable[[Turn], None]] = []
        self.on_image_requested: List[Callable[[ImageUpdate], None]] = []
        self.on_llm_running_changed: List[Callable[[bool], None]] = []

        self.llm_running = False
        self._lock = asyncio.Lock()
        logger.info(f"[Session] Created session {self.session_id}")

    def is_started(self) -> bool:
        return len(self.state.turns) > 1

    def get_all_turns(self) -> List[Turn]:
        return list(self.state.turns)

    def get_last_turn(self) -> Optional[Turn]:
        return self.state.turns[-1] if self.state.turns else None

    def _emit_turn_updated(self, turn: Turn) -> None:
        for callback in self.on_turn_updated:
            callback(turn)

    def _emit_image_requested(self, update: ImageUpdate) -> None:
        for callback in self.on_image_requested:
            callback(update)

    def _set_llm_running(self, running: bool) -> None:
        self.llm_running = running
        for callback in self.on_llm_running_changed:
            callback(running)

    @staticmethod
    def _busy_result() -> TurnValidationResult:
        result = TurnValidationResult()
        result.add_error("A turn is already running", kind="internal")
        return result

    async def start_adventure(self, parameters: StoryStartingParameters) -> TurnValidationResult:
        """Reset the session to a new story and play its first turn"""
        if self._lock.locked():
            logger.warning(f"[Session] Start rejected in session {self.session_id}: busy")
            return self._busy_result()

        async with self._lock:
            logger.info(f"[Session] Starting adventure in session {self.session_id}")
            self.state.restore(AdventureState.from_story(parameters))
            self.memory.reset_narrative()
            await self.memory.update_memory_graph(
                self.state.memory_graph,
                {entity.id: EntityUpdate(**entity.model_dump()) for entity in parameters.entities},
            )
            await self.memory.sync_entities(self.state.memory_graph)
            self._emit_turn_updated(self.state.get_last_turn())

            first_input = self.state.get_parameter_or_default(FIRST_INPUT, DEFAULT_FIRST_INPUT)
            return await self._perform_turn(None, FIRST_ACTION_PREFIX + first_input)

    async def perform_turn(
        self, action: Optional[str] = None, out_of_character: Optional[str] = None
    ) -> TurnValidationResult:
        """Play one turn. The state is persisted only when the turn commits."""
        if self._lock.locked():
            logger.warning(f"[Session] Turn rejected in session {self.session_id}: busy")
            return self._busy_result()

        async with self._lock:
            return await self._perform_turn(action, out_of_character)

    async def _perform_turn(
        self, action: Optional[str], out_of_character: Optional[str]
    ) -> TurnValidationResult:
        # Caller holds the lock
        user_input = UserInput(action=action or None, out_of_character=out_of_character or None)
        self._set_llm_running(True)
        try:
            result = await self.orchestrator.perform_turn(user_input)
        finally:
            self._set_llm_running(False)

        if result.is_failed():
            return result

        self.save()
        self._emit_turn_updated(self.state.get_last_turn())
        for image in self.state.get_last_turn().images:
            self._emit_image_requested(image)
        return result

    def add_feedback(self, feedback: TurnFeedback) -> None:
        """Attach player feedback to the last turn"""
        turn = self.get_last_turn()
        if turn is None:
            return
        turn.feedback = feedback
        self.save()

    def refresh_image(self, role: ImageRole) -> Optional[ImageUpdate]:
        """Request the latest image of a role again"""
        image = self.state.find_image(role)
        if image is not None:
            self._emit_image_requested(image)
        return image

    def save(self) -> None:
        if self.storage is None:
            return
        self.storage.save(
            self.state.model_dump_json().encode("utf-8"), turn_count=len(self.state.turns)
        )

    async def load(self) -> bool:
        """Restore the latest saved state. Narrative memory is rebuilt lazily by later turns."""
        if self.storage is None:
            return False
        if self._lock.locked():
            logger.warning(f"[Session] Load rejected in session {self.session_id}: busy")
            return False

        async with self._lock:
            data = self.storage.load()
            if data is None:
                return False

            self.state.restore(AdventureState.model_validate_json(data))
            self.memory.reset_narrative()
            await self.memory.sync_entities(self.state.memory_graph)
            logger.info(
                f"[Session] Loaded session {self.session_id} with {len(self.state.turns)} turns"
            )
            return True

    def close(self) -> None:
        self.memory.close()
        self.on_turn_updated.clear()
        self.on_image_requested.clear()
        self.on_llm_running_changed.clear()
        logger.info(f"[Session] Closed session {self.session_id}")
