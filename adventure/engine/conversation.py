"""
Conversation buffer owned by the turn orchestrator
"""

from typing import List, Optional

from langchain_core.messages import BaseMessage, SystemMessage


class Conversation:
    """Ordered chat messages; the first one may be the system message"""

    def __init__(self, messages: Optional[List[BaseMessage]] = None):
        self.messages: List[BaseMessage] = list(messages or [])

    def __len__(self) -> int:
        return len(self.messages)

    def snapshot(self) -> List[BaseMessage]:
        return list(self.messages)

    def restore(self, snapshot: List[BaseMessage]) -> None:
        self.messages = list(snapshot)

    def set_system(self, content: str) -> None:
        if self.messages and isinstance(self.messages[0], SystemMessage):
            self.messages[0] = SystemMessage(content=content)
        else:
            self.messages.insert(0, SystemMessage(content=content))

    def add(self, message: BaseMessage) -> None:
        self.messages.append(message)

    def clear(self, keep_system: bool = True) -> None:
        if keep_system and self.messages and isinstance(self.messages[0], SystemMessage):
            self.messages = self.messages[:1]
        else:
            self.messages = []
