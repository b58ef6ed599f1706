"""
The phases of a turn: memory fetch, narrative, memory update, critic and summary
"""

import json
from typing import List, Optional

from langchain_core.messages import AIMessage, HumanMessage

from adventure.engine.conversation import Conversation
from adventure.engine.memory import format_search_result
from adventure.engine.phase import AdventurePhase, OnTurnUpdated, PhaseConfig, TurnContext
from adventure.engine.state import (
    FETCHED_ENTITIES,
    PLOT_PLAN,
    PREVIOUS_BACKGROUND_PROMPT,
    PREVIOUS_PLAYER_PROMPT,
    RECENT_TURNS,
    SEARCHED_RESULTS,
    STORY_ARCHIVE,
    SUMMARY_ANALYSIS,
    USER_PROFILE,
)
from adventure.providers.base import ModelCallParameters
from adventure.schemas import (
    MemoryFetchResponse,
    MemoryUpdateResponse,
    SummaryResponse,
    Turn,
    TurnValidationResult,
    UserInput,
    parse_json_response,
)
from adventure.utils.logger import get_logger
from adventure.utils.sections import extract_sections, find_partial_section, find_section

logger = get_logger(__name__)

NARRATIVE_SECTIONS = ("scene", "narrative", "notes", "suggestedActions")
RESPONSE_END = "</response>"


def format_user_input(user_input: Optional[UserInput]) -> str:
    if user_input is None:
        return "{}"
    return json.dumps(user_input.model_dump(exclude_none=True), indent=2, ensure_ascii=False)


def format_turn_feedback(turn: Turn) -> str:
    """Critic and player feedback closing a replayed turn, empty when there is none"""
    if not turn.critic_feedback and not turn.feedback:
        return ""
    message = f"## Turn {turn.turn_number} end\n"
    if turn.critic_feedback:
        message += f"Critic feedback: {turn.critic_feedback}\n"
    if turn.feedback:
        message += f"Player feedback: {turn.feedback.model_dump_json()}"
    return message


class MemoryFetchPhase(AdventurePhase):
    """Pulls entities and earlier passages relevant to the player's input into context"""

    def __init__(self, context: TurnContext):
        config = PhaseConfig(
            agent_name="Search_Agent",
            prompts=["memory-fetch"],
            llm_parameters=ModelCallParameters(
                model=context.config.phase_model(context.config.model_name_memory_fetch),
                max_tokens=200,
                json_output=True,
            ),
            retry_count=3,
            save_message_to_history=True,
        )
        super().__init__(context, config)
        self.search_results: List[str] = []

    def should_run(self) -> bool:
        return self.state.get_last_turn().turn_number >= self.context.config.memory_fetch_min_turn

    def prepare(self, conversation: Conversation) -> None:
        conversation.clear()
        turns = self.state.turns
        conversation.add(
            HumanMessage(name="Writer", content=turns[-2].writer_response if len(turns) > 1 else "")
        )
        conversation.add(
            HumanMessage(name="Player", content=format_user_input(turns[-1].user_input))
        )

    async def parse(self) -> TurnValidationResult:
        result = TurnValidationResult()
        response = parse_json_response(self.accumulated_response, MemoryFetchResponse, result)
        if response is None:
            return result

        graph = self.state.memory_graph
        entity_ids = [entity_id.strip() for entity_id in response.entities]
        for entity_id in entity_ids:
            if entity_id not in graph:
                result.add_error(f"Invalid entity id '{entity_id}'")
        queries = [query.strip() for query in response.search if query.strip()]
        if not queries:
            result.add_error("No search terms provided")
        if result.is_failed():
            return result

        config = self.context.config
        fetched = self.state.fetched_entities
        # Searches first: the working set only changes once nothing can fail
        entity_hits = await self.context.memory.search_entities(
            queries, config.entity_search_results, exclude_ids=set(fetched.ids()) | set(entity_ids)
        )
        narrative_hits = await self.context.memory.search_narrative(
            queries, config.narrative_search_results, exclude_turns=self.context.visible_turns
        )

        turn_number = self.state.get_last_turn().turn_number
        fetched.add_many(entity_ids, turn_number)
        fetched.add_many((hit.chunk.chunk_id for hit in entity_hits), turn_number)
        self.search_results = [format_search_result(hit) for hit in narrative_hits]
        logger.info(
            f"[Phase] {self.name}: {len(entity_ids)} requested, {len(entity_hits)} found entities, "
            f"{len(narrative_hits)} passages"
        )

        self.state.parameters[FETCHED_ENTITIES] = self.state.render_fetched_entities()
        self.state.parameters[SEARCHED_RESULTS] = "\n".join(self.search_results)
        return result

    def finalize_history(self, conversation: Conversation) -> None:
        # The raw JSON request is replaced by what it retrieved
        conversation.messages[-1] = AIMessage(
            name=self.name, content=self.resolve_prompt("memory-fetch-result")
        )


class NarrativePhase(AdventurePhase):
    """Writes the turn's story text"""

    def __init__(self, context: TurnContext):
        config = PhaseConfig(
            agent_name="Writer_Agent",
            prompts=["narrative"],
            llm_parameters=ModelCallParameters(
                model=context.config.phase_model(context.config.model_name_narrative),
                max_tokens=4000,
                stop_sequence=RESPONSE_END,
            ),
            retry_count=3,
            save_message_to_history=True,
            use_tools=True,
        )
        super().__init__(context, config)

    def prepare(self, conversation: Conversation) -> None:
        conversation.clear()
        conversation.add(HumanMessage(name="Developer", content=self.resolve_prompt("history")))
        conversation.add(
            HumanMessage(name="Developer", content=self.resolve_prompt("memory-fetch-result"))
        )

        turns = self.state.turns
        first_history_turn = max(len(turns) - 1 - self.context.config.turns_to_keep_in_history, 0)
        for turn in turns[first_history_turn:-1]:
            if turn.user_input:
                conversation.add(
                    HumanMessage(
                        name="Player",
                        content=f"## Turn {turn.turn_number} start\nPlayer input:\n"
                        f"{format_user_input(turn.user_input)}",
                    )
                )
            if turn.turn_number == 0:
                conversation.add(
                    HumanMessage(name="Developer", content=f"Turn 0:\n{turn.writer_response}")
                )
            else:
                conversation.add(
                    AIMessage(name=self.name, content=f"<response>{turn.writer_response}</response>")
                )
            feedback = format_turn_feedback(turn)
            if feedback:
                conversation.add(HumanMessage(name="Developer", content=feedback))

        conversation.add(
            HumanMessage(name="Player", content=format_user_input(turns[-1].user_input))
        )

    def on_text_chunk(self, chunk: str, on_turn_updated: OnTurnUpdated) -> None:
        super().on_text_chunk(chunk, on_turn_updated)
        turn = self.state.get_last_turn()
        partial = find_partial_section(self.accumulated_response, "response")
        turn.writer_response = partial if partial is not None else self.accumulated_response
        if turn.get_narrative(partial=True):
            on_turn_updated()

    async def parse(self) -> TurnValidationResult:
        result = TurnValidationResult()
        response, _ = find_section(self.accumulated_response, "response")
        if response is None:
            # Tolerate a missing <response> wrapper around otherwise valid sections
            response = self.accumulated_response
            if response.endswith(RESPONSE_END):
                response = response[: -len(RESPONSE_END)]

        extraction = extract_sections(response, NARRATIVE_SECTIONS)
        for error in extraction.errors:
            result.add_error(error)
        if result.is_failed():
            return result

        turn = self.state.get_last_turn()
        turn.writer_response = response.strip()
        turn.suggested_actions = (extraction.get("suggestedActions") or "").strip()
        return result


class MemoryUpdatePhase(AdventurePhase):
    """Records new facts about entities and writes the turn's image prompts"""

    def __init__(self, context: TurnContext):
        config = PhaseConfig(
            agent_name="Assistant_Agent",
            prompts=["memory-update"],
            llm_parameters=ModelCallParameters(
                model=context.config.phase_model(context.config.model_name_assistant),
                max_tokens=3000,
                json_output=True,
            ),
            retry_count=5,
            save_message_to_history=False,
        )
        super().__init__(context, config)

    def prepare(self, conversation: Conversation) -> None:
        conversation.clear()
        # Story context without the recent turns, the turn itself follows
        parameters = dict(self.state.parameters)
        parameters[RECENT_TURNS] = " "
        conversation.add(
            HumanMessage(name="Developer", content=self.context.prompts.resolve("history", parameters))
        )
        turn = self.state.get_last_turn()
        conversation.add(
            HumanMessage(
                name="Player",
                content=f"## Turn {turn.turn_number} start\nPlayer input:\n"
                f"{format_user_input(turn.user_input)}",
            )
        )
        conversation.add(HumanMessage(name="Writer_Agent", content=turn.writer_response))

    def critic_feedback(self, turn: Turn, feedback: str) -> str:
        word_count = len(turn.get_narrative().split())
        config = self.context.config
        message = f"Feedback: Narrative word count {word_count}"
        if word_count < config.min_narrative_words:
            message += (
                " CRITICAL: Narrative didn't reach the minimum word count. "
                "Next turn should overcompensate for this.\n"
            )
        elif word_count < config.low_narrative_words:
            message += " Narrative length is dangerously low. Try writing more next time.\n"
        else:
            message += " Narrative length is good. Keep it up!\n"
        return message + feedback

    async def parse(self) -> TurnValidationResult:
        result = TurnValidationResult()
        response = parse_json_response(self.accumulated_response, MemoryUpdateResponse, result)
        if response is None:
            return result

        graph = self.state.memory_graph
        new_entities = response.new_entities or {}
        updates = response.updates or {}

        existing = [entity_id for entity_id in new_entities if entity_id in graph]
        if existing:
            result.add_error(
                "'newEntities' section contains entities already present in memory: "
                + ", ".join(existing),
                kind="memory_consistency",
            )
        for entity_id in updates:
            if entity_id not in graph:
                result.add_error(
                    f"Entity {entity_id} must be added to memory before updating.",
                    kind="memory_consistency",
                )

        required = (
            ("illustrationType", response.illustration_type),
            ("backgroundPrompt", response.background_prompt),
            ("illustrationPrompt", response.illustration_prompt),
            ("playerPortraitPrompt", response.player_portrait_prompt),
        )
        for name, value in required:
            if not value.strip():
                result.add_error(f"{name} is missing")
        if result.is_failed():
            return result

        turn = self.state.get_last_turn()
        turn.critic_feedback = self.critic_feedback(turn, response.feedback)

        # New ids and updated ids are disjoint here, one staged merge applies both
        touched = await self.context.memory.update_memory_graph(graph, {**new_entities, **updates})
        self.state.fetched_entities.add_many(touched, turn.turn_number)

        turn.illustration_type = response.illustration_type.strip()
        turn.illustration_id = response.illustration_id.strip()

        background = response.background_prompt.strip()
        player = response.player_portrait_prompt.strip()
        self.state.parameters[PREVIOUS_BACKGROUND_PROMPT] = background
        self.state.parameters[PREVIOUS_PLAYER_PROMPT] = player

        self.state.update_image(self.state.make_image_update("background", background, "location"))
        self.state.update_image(
            self.state.make_image_update("player", f"{player}, located in {background}", "character")
        )
        self.state.update_image(
            self.state.make_image_update(
                "illustration",
                f"{response.illustration_prompt.strip()}, located in {background}",
                turn.illustration_type,
            )
        )
        logger.info(
            f"[Phase] {self.name}: {len(new_entities)} new entities, {len(updates)} updates"
        )
        return result


class CriticPhase(AdventurePhase):
    """Optional short critique of the written turn"""

    def __init__(self, context: TurnContext):
        config = PhaseConfig(
            agent_name="Critic_Agent",
            prompts=["critic"],
            llm_parameters=ModelCallParameters(model=context.config.model_name, max_tokens=1500),
            retry_count=2,
            save_message_to_history=True,
        )
        super().__init__(context, config)

    def prepare(self, conversation: Conversation) -> None:
        conversation.add(
            HumanMessage(name="Developer", content="## Write the short feedback on the current turn")
        )

    async def parse(self) -> TurnValidationResult:
        result = TurnValidationResult()
        response, errors = find_section(self.accumulated_response, "response")
        for error in errors:
            result.add_error(error)
        if result.is_failed() or response is None:
            return result

        turn = self.state.get_last_turn()
        turn.critic_feedback = "\n".join(part for part in (turn.critic_feedback, response) if part)
        return result


class SummaryPhase(AdventurePhase):
    """Folds older turns into the story archive and refreshes the plot plan"""

    def __init__(self, context: TurnContext):
        config = PhaseConfig(
            agent_name="Summary_Agent",
            prompts=["summary"],
            llm_parameters=ModelCallParameters(
                model=context.config.model_name, max_tokens=2000, json_output=True
            ),
            retry_count=5,
            save_message_to_history=False,
        )
        super().__init__(context, config)

    def prepare(self, conversation: Conversation) -> None:
        conversation.add(HumanMessage(name="Developer", content="Summary phase"))

    async def parse(self) -> TurnValidationResult:
        result = TurnValidationResult()
        response = parse_json_response(self.accumulated_response, SummaryResponse, result)
        if response is None:
            return result

        if not response.summary.strip():
            result.add_error("Summary is missing")
        if not response.plot_plan.strip():
            result.add_error("Plot plan is missing")
        if not response.user_profile.strip():
            result.add_error("User profile is missing")
        if result.is_failed():
            return result

        parameters = self.state.parameters
        parameters[PLOT_PLAN] = response.plot_plan
        parameters[USER_PROFILE] = response.user_profile
        parameters[SUMMARY_ANALYSIS] = response.analysis
        archive = self.state.get_parameter_or_default(STORY_ARCHIVE)
        parameters[STORY_ARCHIVE] = f"{archive}\n{response.summary}" if archive else response.summary
        self.state.last_summarized_turn = len(self.state.turns) - 1
        logger.info(f"[Phase] {self.name}: archived up to turn {self.state.last_summarized_turn}")
        return result
