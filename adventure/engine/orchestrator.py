"""
Turn orchestrator - runs the phases of one turn and commits or rolls back.

This module coordinates a turn:
- Context building from the session state and turn history
- Sequential phases sharing one conversation buffer
- Rollback to the pre-turn snapshot when any phase fails
- Periodic summary of older turns
"""

from enum import Enum
from typing import Callable, List

from langchain_core.messages import HumanMessage

from adventure.engine.conversation import Conversation
from adventure.engine.phase import AdventurePhase, TurnContext
from adventure.engine.phases import (
    CriticPhase,
    MemoryFetchPhase,
    MemoryUpdatePhase,
    NarrativePhase,
    SummaryPhase,
    format_user_input,
)
from adventure.engine.state import (
    EXISTING_ENTITY_IDS,
    FETCHED_ENTITIES,
    RECENT_TURNS,
    REFMAP,
    SEARCHED_RESULTS,
    TRANSIENT_PARAMETERS,
    TURN_NUMBER,
    TURNS_TO_SUMMARIZE,
    AdventureState,
)
from adventure.errors import TransportError
from adventure.schemas import Turn, TurnValidationResult, UserInput
from adventure.utils.logger import get_logger

logger = get_logger(__name__)


class TurnStatus(str, Enum):
    IDLE = "idle"
    BUILDING_CONTEXT = "building_context"
    RUNNING_PHASES = "running_phases"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TurnOrchestrator:
    """Runs turns against one session's state"""

    def __init__(self, context: TurnContext, on_turn_updated: Callable[[Turn], None]):
        self.context = context
        self.conversation = Conversation()
        self.status = TurnStatus.IDLE
        self._on_turn_updated = on_turn_updated

    @property
    def state(self) -> AdventureState:
        return self.context.state

    def _emit_last_turn(self) -> None:
        self._on_turn_updated(self.state.get_last_turn())

    def fetch_recent_turn_narratives(self, first_turn: int, last_turn_inclusive: int) -> str:
        """Plain-text replay of a range of turns for the prompts"""
        text = ""
        for turn in self.state.turns[max(first_turn, 0) : max(last_turn_inclusive + 1, 0)]:
            text += f"\n--Turn {turn.turn_number}:\n"
            if turn.user_input:
                text += f">{format_user_input(turn.user_input)}\n"
            text += turn.get_narrative()
            text += "\nNotes:\n"
            text += turn.get_notes()
            if turn.feedback:
                text += f"\nPlayer feedback: {turn.feedback.model_dump_json()}\n"
        return text

    def build_phases(self) -> List[AdventurePhase]:
        phases: List[AdventurePhase] = [
            MemoryFetchPhase(self.context),
            NarrativePhase(self.context),
            MemoryUpdatePhase(self.context),
        ]
        if self.context.config.enable_critic_phase:
            phases.append(CriticPhase(self.context))
        return phases

    async def perform_turn(self, user_input: UserInput) -> TurnValidationResult:
        """
        Run one full turn.

        On failure the state is restored to its value before the call and a
        cancellation marker turn is sent to ``on_turn_updated``.
        """
        state = self.state
        config = self.context.config
        snapshot = state.snapshot()
        turn_number = len(state.turns)
        first_unarchived_turn = turn_number - config.turns_to_keep
        first_history_turn = turn_number - config.turns_to_keep_in_history
        logger.info(
            f"[Orchestrator] Turn {turn_number} started "
            f"(prompt turns {first_unarchived_turn}-{first_history_turn - 1}, "
            f"history turns {first_history_turn}-{turn_number - 1})"
        )

        result = TurnValidationResult()
        try:
            self.status = TurnStatus.BUILDING_CONTEXT
            await self.context.memory.backfill_narratives(state.turns, first_unarchived_turn)

            state.turns.append(Turn(turn_number=turn_number, user_input=user_input))
            self._emit_last_turn()
            self._build_parameters(turn_number, first_unarchived_turn, first_history_turn)

            self.status = TurnStatus.RUNNING_PHASES
            for phase in self.build_phases():
                result = await self.run_phase(phase)
                if result.is_failed():
                    break

            self.conversation.clear()
            if result.is_success():
                # The phases add to the working set without checking the cap
                self._evict_fetched_entities(turn_number)
            if (
                result.is_success()
                and len(state.turns) - state.last_summarized_turn > config.turns_to_summarize
            ):
                await self._summarize()
        except Exception as e:
            logger.exception(f"[Orchestrator] Turn {turn_number} aborted")
            result.add_error(f"Internal error: {e}", kind="internal")

        if result.is_failed():
            logger.error(f"[Orchestrator] Turn {turn_number} failed: {result.messages()}")
            await self._rollback(snapshot, turn_number)
        else:
            self.status = TurnStatus.COMMITTED
            logger.info(f"[Orchestrator] Turn {turn_number} committed")

        for name in TRANSIENT_PARAMETERS:
            state.parameters.pop(name, None)
        self.conversation.clear(keep_system=False)
        return result

    async def run_phase(self, phase: AdventurePhase) -> TurnValidationResult:
        """Run a phase, turning escaped exceptions into turn errors"""
        if not phase.should_run():
            logger.info(f"[Orchestrator] Skipping {phase.name}")
            return TurnValidationResult()

        try:
            result = await phase.run(self.conversation, self._emit_last_turn)
        except TransportError as e:
            logger.error(f"[Orchestrator] {phase.name} gave up on the model provider: {e}")
            result = TurnValidationResult()
            result.add_error(str(e), kind="transport")
            return result
        except Exception as e:
            logger.exception(f"[Orchestrator] {phase.name} raised an unexpected error")
            result = TurnValidationResult()
            result.add_error(f"{type(e).__name__}: {e}", kind="internal")
            return result

        if result.is_success():
            self._emit_last_turn()
        return result

    def _build_parameters(
        self, turn_number: int, first_unarchived_turn: int, first_history_turn: int
    ) -> None:
        state = self.state
        config = self.context.config
        graph = state.memory_graph
        parameters = state.parameters

        parameters[RECENT_TURNS] = self.fetch_recent_turn_narratives(
            first_unarchived_turn, first_history_turn - 1
        )
        parameters[TURN_NUMBER] = str(turn_number)
        parameters[REFMAP] = graph.reference_map()
        parameters[EXISTING_ENTITY_IDS] = ",".join(graph.ids())
        parameters[SEARCHED_RESULTS] = ""

        self._evict_fetched_entities(turn_number)
        parameters[FETCHED_ENTITIES] = state.render_fetched_entities(
            fetch_all=turn_number < config.memory_fetch_min_turn
        )

        visible_turns = set(range(max(first_unarchived_turn, 0), turn_number + 1))
        self.context.visible_turns = visible_turns
        self.context.tools.visible_turns = visible_turns

    def _evict_fetched_entities(self, turn_number: int) -> None:
        config = self.context.config
        evicted = self.state.fetched_entities.evict(
            turn_number, config.max_fetched_entities, config.min_entity_age_to_delete
        )
        if evicted:
            logger.debug(f"[Orchestrator] Evicted fetched entities: {evicted}")

    async def _summarize(self) -> None:
        state = self.state
        self.conversation.add(
            HumanMessage(
                name="History_Provider",
                content=self.context.prompts.resolve("history", state.parameters),
            )
        )
        state.parameters[TURNS_TO_SUMMARIZE] = self.fetch_recent_turn_narratives(
            state.last_summarized_turn + 1, len(state.turns) - 1
        )
        summary = await self.run_phase(SummaryPhase(self.context))
        if summary.is_failed():
            logger.warning(f"[Orchestrator] Summary skipped: {summary.messages()}")
        state.parameters.pop(TURNS_TO_SUMMARIZE, None)
        self.conversation.clear()

    async def _rollback(self, snapshot: AdventureState, turn_number: int) -> None:
        self.state.restore(snapshot)
        self.status = TurnStatus.ROLLED_BACK
        try:
            await self.context.memory.sync_entities(self.state.memory_graph)
        except Exception:
            logger.exception("[Orchestrator] Failed to resync entity memory after rollback")
        self._on_turn_updated(Turn(turn_number=turn_number, cancelled=True))
