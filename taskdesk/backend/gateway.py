import logging
from typing import Any, Dict, List, Mapping

from .domain import NotFound, StoreError
from .store import RecordStore

logger = logging.getLogger(__name__)

# Never accepted from a caller's field set.
PROTECTED_FIELDS = ("id", "user_id", "created_at")

class OwnedCollection:
    """
    Owner-scoped access to one table of a record store.

    Every call filters on ``user_id`` together with ``id`` where a single
    record is addressed, so a row belonging to someone else looks exactly
    like a row that does not exist.
    """

    def __init__(self, store: RecordStore, table: str, label: str):
        self.store = store
        self.table = table
        self.label = label

    def _not_found(self) -> NotFound:
        return NotFound(f"{self.label} not found")

    @staticmethod
    def _strip(fields: Mapping[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in fields.items() if k not in PROTECTED_FIELDS}

    def list_by_owner(self, owner_id: str) -> List[Dict[str, Any]]:
        return self.store.select(self.table, {"user_id": owner_id}, order_by="created_at", descending=True)

    def get_one_by_owner(self, record_id: str, owner_id: str) -> Dict[str, Any]:
        rows = self.store.select(self.table, {"id": record_id, "user_id": owner_id}, limit=1)
        if not rows:
            raise self._not_found()
        return rows[0]

    def insert(self, record: Mapping[str, Any], owner_id: str) -> Dict[str, Any]:
        row = self._strip(record)
        row["user_id"] = owner_id
        rows = self.store.insert(self.table, row)
        if not rows:
            raise StoreError(f"Failed to create {self.label.lower()}")
        logger.debug("created %s %s for %s", self.table, rows[0].get("id"), owner_id)
        return rows[0]

    def update_partial(self, record_id: str, owner_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        changes = self._strip(fields)
        rows = self.store.update(self.table, {"id": record_id, "user_id": owner_id}, changes)
        if not rows:
            raise self._not_found()
        return rows[0]

    def delete_by_owner(self, record_id: str, owner_id: str) -> None:
        rows = self.store.delete(self.table, {"id": record_id, "user_id": owner_id})
        if not rows:
            raise self._not_found()
