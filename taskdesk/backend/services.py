import logging
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel

from .domain import NotFound, StoreError, ValidationError
from .gateway import OwnedCollection
from .store import RecordStore

logger = logging.getLogger(__name__)

class ResourceService:
    """Owner-scoped CRUD for one resource type, fed validated request bodies."""

    table: str = ""
    label: str = ""

    def __init__(self, store: RecordStore):
        self.records = OwnedCollection(store, self.table, self.label)

    def list(self, owner_id: str) -> Tuple[List[Dict[str, Any]], int]:
        rows = self.records.list_by_owner(owner_id)
        return rows, len(rows)

    def get(self, record_id: str, owner_id: str) -> Dict[str, Any]:
        return self.records.get_one_by_owner(record_id, owner_id)

    def create(self, body: BaseModel, owner_id: str) -> Dict[str, Any]:
        return self.records.insert(body.model_dump(), owner_id)

    def update(self, record_id: str, owner_id: str, body: BaseModel) -> Dict[str, Any]:
        changes = body.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No valid fields to update")
        return self.records.update_partial(record_id, owner_id, changes)

    def delete(self, record_id: str, owner_id: str) -> None:
        self.records.get_one_by_owner(record_id, owner_id)
        try:
            self.records.delete_by_owner(record_id, owner_id)
        except NotFound:
            # Row vanished between the check and the delete.
            logger.warning("%s %s disappeared before delete", self.table, record_id)
            raise StoreError(f"Failed to delete {self.label.lower()}")

class TaskService(ResourceService):
    table = "tasks"
    label = "Task"

class NoteService(ResourceService):
    table = "notes"
    label = "Note"
