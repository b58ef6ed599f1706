"""
WebSocket endpoint driving one adventure session per connection
"""

import asyncio
import json
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from adventure.config import settings
from adventure.db.manager import AdventureStorage, DatabaseManager
from adventure.engine.session import AdventureSession
from adventure.providers import create_embedding_provider, create_provider
from adventure.schemas import ImageUpdate, StoryStartingParameters, Turn, TurnFeedback
from adventure.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

SessionFactory = Callable[[str], AdventureSession]

_db_manager: Optional[DatabaseManager] = None

# Connections with a live session, reported by the health endpoint
active_connections: Set["ClientConnection"] = set()


def get_db_manager() -> DatabaseManager:
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager(settings.database_path, settings.max_save_files)
    return _db_manager


def create_session(adventure_id: str) -> AdventureSession:
    """Build a session with the configured providers and durable storage"""
    return AdventureSession(
        provider=create_provider(),
        embeddings=create_embedding_provider(),
        storage=AdventureStorage(get_db_manager(), adventure_id),
        session_id=f"{adventure_id}-{uuid.uuid4().hex[:8]}",
    )


def get_session_factory() -> SessionFactory:
    return create_session


def load_story_parameters(path: str) -> StoryStartingParameters:
    """Read the starting parameters of a new story from a JSON file"""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return StoryStartingParameters.model_validate(data)


def turn_message(turn: Turn) -> Dict[str, Any]:
    return {"type": "turn-update", "content": turn.to_client()}


def image_message(update: ImageUpdate) -> Dict[str, Any]:
    return {"type": "image-update", "role": update.role, "content": update.model_dump()}


def error_message(error: str, details: Optional[list] = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {"type": "error", "error": error}
    if details:
        message["details"] = details
    return message


class ClientConnection:
    """Bridges session hooks to one WebSocket"""

    def __init__(self, websocket: WebSocket, session: AdventureSession):
        self.websocket = websocket
        self.session = session
        self.outgoing: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self.tasks: Set[asyncio.Task] = set()

        session.on_turn_updated.append(lambda turn: self.send(turn_message(turn)))
        session.on_image_requested.append(lambda update: self.send_image(update))
        session.on_llm_running_changed.append(
            lambda running: self.send({"type": "llm-running", "content": running})
        )

    def send(self, message: Dict[str, Any]) -> None:
        self.outgoing.put_nowait(message)

    def send_image(self, update: ImageUpdate) -> None:
        if not update.image_prompt:
            return
        logger.info(f"[WebSocket] Image update: {update.role} = {update.image_prompt}")
        self.send(image_message(update))

    async def send_loop(self) -> None:
        while True:
            message = await self.outgoing.get()
            await self.websocket.send_json(message)

    def replay(self) -> None:
        """Send every turn and the images of the last one"""
        for turn in self.session.get_all_turns():
            self.send(turn_message(turn))
        last_turn = self.session.get_last_turn()
        if last_turn is not None:
            for image in last_turn.images:
                self.send_image(image)

    def spawn(self, coroutine) -> None:
        task = asyncio.create_task(coroutine)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    async def on_action_message(self, message: Dict[str, Any]) -> None:
        try:
            if not self.session.is_started():
                story = load_story_parameters(settings.story_parameters_path)
                result = await self.session.start_adventure(story)
            else:
                result = await self.session.perform_turn(
                    message.get("characterAction"), message.get("instructions")
                )
            if result.is_failed():
                self.send(error_message("Turn failed", result.messages()))
        except Exception:
            logger.exception("[WebSocket] Error processing action")
            self.send(error_message("Failed to process action"))

    def on_feedback_message(self, message: Dict[str, Any]) -> None:
        try:
            feedback = TurnFeedback(
                feedback_type=message.get("feedbackType"),
                comment=message.get("feedbackComment") or "",
            )
        except ValidationError as e:
            logger.error(f"[WebSocket] Invalid feedback: {e}")
            self.send(error_message("Failed to process feedback"))
            return
        logger.info(f"[WebSocket] Feedback received: {feedback.feedback_type} - {feedback.comment}")
        self.session.add_feedback(feedback)

    def on_refresh_image_message(self, message: Dict[str, Any]) -> None:
        role = message.get("role")
        if role not in ("player", "background", "illustration") or not self.session.refresh_image(role):
            logger.error(f"[WebSocket] Image not found for role: {role}")
            self.send(error_message(f"Image not found for role: {role}"))

    def dispatch(self, message: Dict[str, Any]) -> None:
        message_type = message.get("type")
        if message_type == "action":
            self.spawn(self.on_action_message(message))
        elif message_type == "feedback":
            self.on_feedback_message(message)
        elif message_type == "refresh-image":
            self.on_refresh_image_message(message)
        else:
            logger.error(f"[WebSocket] Unknown message type: {message_type}")
            self.send(error_message(f"Unknown message type: {message_type}"))

    def close(self) -> None:
        for task in list(self.tasks):
            task.cancel()
        self.session.close()


@router.websocket("/ws")
async def adventure_websocket(
    websocket: WebSocket,
    adventure_id: str = "default",
    session_factory: SessionFactory = Depends(get_session_factory),
):
    """One adventure session for the lifetime of the connection"""
    await websocket.accept()
    logger.info(f"[WebSocket] Connection established for adventure {adventure_id}")

    connection = ClientConnection(websocket, session_factory(adventure_id))
    active_connections.add(connection)
    sender = asyncio.create_task(connection.send_loop())
    try:
        await connection.session.load()
        connection.replay()
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                connection.send(error_message("Invalid JSON message"))
                continue
            if not isinstance(message, dict):
                connection.send(error_message("Invalid message"))
                continue
            connection.dispatch(message)
    except WebSocketDisconnect:
        logger.info(f"[WebSocket] Connection closed for adventure {adventure_id}")
    finally:
        sender.cancel()
        active_connections.discard(connection)
        connection.close()
