"""
Entity memory graph and the working set of entities fetched into context
"""

import json
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from adventure.schemas import ENTITY_FIELDS, Entity, EntityUpdate, MemoryGraphUpdate

# Fields that accumulate text instead of being replaced
APPEND_ONLY_FIELDS = ("info", "secret")


def merge_entity(entity: Entity, update: EntityUpdate) -> Entity:
    """
    Merge an update into an entity in place.

    Empty values never overwrite. ``info`` and ``secret`` grow by appending
    new text on a new line unless every line of it is already there. Other
    fields are replaced. The id of the update is ignored.
    """
    for field in ENTITY_FIELDS:
        value = getattr(update, field)
        if value is None or value == "":
            continue
        current = getattr(entity, field)
        if field in APPEND_ONLY_FIELDS and current:
            existing_lines = current.split("\n")
            if all(line in existing_lines for line in value.split("\n")):
                continue
            value = f"{current}\n{value}"
        setattr(entity, field, value)
    return entity


class MemoryGraph(BaseModel):
    """All entities of an adventure keyed by id"""

    entities: Dict[str, Entity] = Field(default_factory=dict)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self.entities

    def get(self, entity_id: str) -> Optional[Entity]:
        return self.entities.get(entity_id)

    def ids(self) -> List[str]:
        return list(self.entities.keys())

    def apply_update(self, update: MemoryGraphUpdate) -> List[str]:
        """Merge every entry, creating unknown ids first. Returns touched ids."""
        touched = []
        for entity_id, entity_update in update.items():
            entity = self.entities.get(entity_id)
            if entity is None:
                entity = Entity(id=entity_id)
                self.entities[entity_id] = entity
            merge_entity(entity, entity_update)
            touched.append(entity_id)
        return touched

    def render(self, entity_ids: Iterable[str]) -> str:
        """JSON list of the given entities, skipping unknown and repeated ids"""
        seen = set()
        entities = []
        for entity_id in entity_ids:
            entity = self.entities.get(entity_id)
            if entity is None or entity_id in seen:
                continue
            seen.add(entity_id)
            entities.append(entity.model_dump(exclude_none=True))
        return json.dumps(entities, indent=2, ensure_ascii=False)

    def reference_map(self) -> str:
        """One line per entity: id, name and brief description"""
        lines = []
        for entity_id, entity in self.entities.items():
            line = f"{entity_id} → {entity.name}"
            if entity.brief:
                line += f", {entity.brief}"
            lines.append(line)
        return "\n".join(lines)


class FetchedEntities(BaseModel):
    """Entity ids currently in the model's context, with the turn they were last used"""

    entries: Dict[str, int] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self.entries

    def ids(self) -> List[str]:
        return list(self.entries.keys())

    def add(self, entity_id: str, turn_number: int) -> None:
        self.entries[entity_id] = turn_number

    def add_many(self, entity_ids: Iterable[str], turn_number: int) -> None:
        for entity_id in entity_ids:
            self.add(entity_id, turn_number)

    def evict(self, current_turn: int, max_entities: int, min_age: int) -> List[str]:
        """
        Drop the oldest entries until at most ``max_entities`` remain.

        Entries used less than ``min_age`` turns ago are never dropped, so the
        set can stay above the cap.
        """
        candidates = sorted(
            (turn, entity_id)
            for entity_id, turn in self.entries.items()
            if current_turn - turn >= min_age
        )
        evicted = []
        for _, entity_id in candidates:
            if len(self.entries) <= max_entities:
                break
            del self.entries[entity_id]
            evicted.append(entity_id)
        return evicted
