"""
Shared fixtures: a scripted streaming provider, predictable embeddings and sessions.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.messages import BaseMessage
from langchain_core.tools import BaseTool

from adventure.config import Settings
from adventure.engine.session import AdventureSession
from adventure.providers.base import BaseProvider, ModelCallParameters, StreamEvent
from adventure.schemas import Entity, StoryStartingParameters

VOCABULARY = ("goblin", "camp", "lair", "forest", "castle", "dragon", "sword", "river")


class KeywordEmbeddings(Embeddings):
    """
    Bag-of-keywords vectors, so distances between texts are easy to predict.

    Setting ``failures`` makes that many following requests raise.
    """

    def __init__(self):
        self.failures = 0

    def _check_available(self) -> None:
        if self.failures:
            self.failures -= 1
            raise ConnectionError("embedding service unavailable")

    def _embed(self, text: str) -> List[float]:
        lowered = text.lower()
        return [float(lowered.count(word)) for word in VOCABULARY] + [1.0]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self._check_available()
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        self._check_available()
        return self._embed(text)


class ScriptedProvider(BaseProvider):
    """
    Replays queued responses, one per model call.

    A queued item is a string, a dict with ``text``, ``tool_calls`` and
    ``finish_reason``, or an exception to raise instead of streaming.
    """

    def __init__(self):
        super().__init__("http://localhost/v1", "test-key", "test-model")
        self.responses: List[Any] = []
        self.calls: List[Dict[str, Any]] = []

    def add(self, *responses: Any) -> "ScriptedProvider":
        self.responses.extend(responses)
        return self

    async def stream(
        self,
        messages: Sequence[BaseMessage],
        params: ModelCallParameters,
        tools: Optional[Sequence[BaseTool]] = None,
    ):
        self.calls.append({"messages": list(messages), "params": params, "tools": tools})
        if not self.responses:
            raise AssertionError("No scripted response left")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            item = {"text": item}

        text = item.get("text", "")
        middle = len(text) // 2
        for piece in (text[:middle], text[middle:]):
            if piece:
                yield StreamEvent(text=piece)
        yield StreamEvent(
            done=True,
            tool_calls=item.get("tool_calls", []),
            finish_reason=item.get("finish_reason", "stop"),
        )

    async def health_check(self) -> bool:
        return True


class Replies:
    """Builders for well-formed model responses"""

    @staticmethod
    def narrative(text: str = "The forest is quiet.", suggested: str = "Look around") -> str:
        return (
            "<response><scene>Forest edge</scene>"
            f"<narrative>{text}</narrative>"
            "<notes>Nothing notable</notes>"
            f"<suggestedActions>{suggested}</suggestedActions>"
        )

    @staticmethod
    def memory_update(
        new_entities: Optional[Dict[str, Any]] = None,
        updates: Optional[Dict[str, Any]] = None,
        **overrides: str,
    ) -> str:
        data: Dict[str, Any] = {
            "feedback": "Solid turn.",
            "newEntities": new_entities or {},
            "updates": updates or {},
            "backgroundPrompt": "misty forest",
            "illustrationType": "character",
            "illustrationId": "hero",
            "illustrationPrompt": "hero drawing a sword",
            "playerPortraitPrompt": "young knight",
        }
        data.update(overrides)
        return json.dumps(data)

    @staticmethod
    def memory_fetch(entities: Optional[List[str]] = None, search: Optional[List[str]] = None) -> str:
        return json.dumps({"entities": entities or [], "search": search or ["forest"]})

    @staticmethod
    def summary(summary: str = "The hero entered the forest.") -> str:
        return json.dumps(
            {
                "summary": summary,
                "analysis": "The player likes exploring.",
                "plotPlan": "Lead the hero to the castle.",
                "userProfile": "Curious explorer.",
            }
        )


@pytest.fixture
def replies():
    return Replies


@pytest.fixture
def embeddings():
    return KeywordEmbeddings()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        openai_api_key="test-key",
        embedding_provider="fake",
        database_path=str(tmp_path / "adventure.db"),
        transport_retry_count=2,
        enable_critic_phase=False,
    )


@pytest.fixture
def story():
    return StoryStartingParameters(
        backstory="A young knight wakes up at the edge of a dark forest.",
        novel_instructions="Write in second person.",
        first_input="Wake up",
        entities=[
            Entity(id="hero", type="character", name="Hero", brief="young knight", info="Carries a sword"),
            Entity(id="forest", type="location", name="Dark Forest", info="An old forest by the river"),
        ],
        important_entities=["hero"],
    )


@pytest.fixture
def make_session(provider, embeddings, test_settings):
    """Factory for sessions sharing the scripted provider, closed after the test"""
    sessions: List[AdventureSession] = []

    def factory(config: Optional[Settings] = None, storage=None, session_id: str = "test") -> AdventureSession:
        session = AdventureSession(
            provider=provider,
            embeddings=embeddings,
            storage=storage,
            config=config or test_settings,
            session_id=session_id,
        )
        sessions.append(session)
        return session

    yield factory

    for session in sessions:
        session.close()
