"""
Client-side resource lists with optimistic mutations.

Every mutation is tracked by a PendingMutation that moves through
IDLE -> APPLIED -> CONFIRMED | ROLLED_BACK. Updates and deletes are applied
to the local list before the request is sent, with a pre-image kept so a
failed request can restore exactly what was there. Creates have no
optimistic phase: the server's record is prepended only on success.

Mutations are not queued or locked against each other; when two requests
for the same record race, the last response to arrive wins.
"""

import asyncio
import copy
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .api import ApiClient, ApiError

logger = logging.getLogger(__name__)

class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

class MutationState(str, Enum):
    IDLE = "idle"
    APPLIED = "applied"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"

class IllegalTransition(Exception):
    pass

class _Missing:
    """Marks a field the record did not have before an update."""

    def __deepcopy__(self, memo):
        return self

    def __repr__(self):
        return "<missing>"

_MISSING = _Missing()

class PendingMutation:
    """One in-flight mutation and the pre-image needed to undo it."""

    TRANSITIONS = {
        MutationState.IDLE: {MutationState.APPLIED},
        MutationState.APPLIED: {MutationState.CONFIRMED, MutationState.ROLLED_BACK},
        MutationState.CONFIRMED: set(),
        MutationState.ROLLED_BACK: set(),
    }

    def __init__(self, kind: MutationKind, record_id: Optional[str] = None):
        self.kind = kind
        self.record_id = record_id
        self.state = MutationState.IDLE
        self.pre_image: Any = None
        self.error: Optional[str] = None

    def _move(self, target: MutationState) -> None:
        allowed = set(self.TRANSITIONS[self.state])
        # Creates resolve straight from IDLE.
        if self.kind is MutationKind.CREATE and self.state is MutationState.IDLE:
            allowed = {MutationState.CONFIRMED, MutationState.ROLLED_BACK}
        if target not in allowed:
            raise IllegalTransition(f"{self.kind.value} mutation cannot go from {self.state.value} to {target.value}")
        self.state = target

    def apply(self, pre_image: Any) -> None:
        self.pre_image = copy.deepcopy(pre_image)
        self._move(MutationState.APPLIED)

    def confirm(self) -> None:
        self._move(MutationState.CONFIRMED)

    def roll_back(self, error: Optional[str] = None) -> None:
        self.error = error
        self._move(MutationState.ROLLED_BACK)

    @property
    def resolved(self) -> bool:
        return self.state in (MutationState.CONFIRMED, MutationState.ROLLED_BACK)

    def __repr__(self):
        return f"PendingMutation({self.kind.value}, {self.record_id!r}, {self.state.value})"

class Notice:
    """A transient user-facing notification."""

    def __init__(self, level: str, text: str):
        self.level = level
        self.text = text

    def __eq__(self, other):
        return isinstance(other, Notice) and (self.level, self.text) == (other.level, other.text)

    def __repr__(self):
        return f"Notice({self.level!r}, {self.text!r})"

Notifier = Callable[[Notice], None]

def log_notice(notice: Notice) -> None:
    logger.log(logging.ERROR if notice.level == "error" else logging.INFO, notice.text)

class ResourceList:
    """Local copy of one resource collection, kept newest-first."""

    def __init__(self, api: ApiClient, endpoint: str, label: str, notify: Optional[Notifier] = None):
        self.api = api
        self.endpoint = endpoint
        self.label = label
        self.notify = notify or log_notice
        self.items: List[Dict[str, Any]] = []
        self.pending: List[PendingMutation] = []

    def find(self, record_id: str) -> Optional[Dict[str, Any]]:
        for item in self.items:
            if item.get("id") == record_id:
                return item
        return None

    def _index(self, record_id: str) -> int:
        for i, item in enumerate(self.items):
            if item.get("id") == record_id:
                return i
        return -1

    async def _send(self, mutation: PendingMutation, call: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
        """Await one request, listing its mutation in ``pending`` while it is in flight."""
        self.pending.append(mutation)
        try:
            return await call
        finally:
            self.pending.remove(mutation)

    def _fail(self, action: str, err: ApiError) -> None:
        logger.warning("failed to %s %s: %s", action, self.label.lower(), err.message)
        self.notify(Notice("error", f"Failed to {action} {self.label.lower()}"))

    async def load(self) -> List[Dict[str, Any]]:
        try:
            response = await self.api.get(self.endpoint)
        except ApiError as e:
            self._fail("load", e)
            return self.items
        self.items = list(response.get("data") or [])
        return self.items

    async def create(self, payload: Dict[str, Any]) -> PendingMutation:
        mutation = PendingMutation(MutationKind.CREATE)
        try:
            response = await self._send(mutation, self.api.post(self.endpoint, payload))
        except ApiError as e:
            mutation.roll_back(e.message)
            self._fail("create", e)
            return mutation
        record = response.get("data")
        if record:
            mutation.record_id = record.get("id")
            self.items.insert(0, record)
        mutation.confirm()
        self.notify(Notice("success", f"{self.label} created"))
        return mutation

    async def update(self, record_id: str, changes: Dict[str, Any],
                     success_text: Optional[str] = None) -> Optional[PendingMutation]:
        index = self._index(record_id)
        if index < 0:
            return None
        current = self.items[index]
        mutation = PendingMutation(MutationKind.UPDATE, record_id)
        mutation.apply({name: current.get(name, _MISSING) for name in changes})
        self.items[index] = {**current, **changes}

        try:
            await self._send(mutation, self.api.patch(f"{self.endpoint}/{record_id}", changes))
        except ApiError as e:
            self._restore_fields(record_id, mutation.pre_image)
            mutation.roll_back(e.message)
            self._fail("update", e)
            return mutation
        mutation.confirm()
        if success_text:
            self.notify(Notice("success", success_text))
        return mutation

    def _restore_fields(self, record_id: str, pre_image: Dict[str, Any]) -> None:
        index = self._index(record_id)
        if index < 0:
            return
        restored = dict(self.items[index])
        for name, value in pre_image.items():
            if value is _MISSING:
                restored.pop(name, None)
            else:
                restored[name] = value
        self.items[index] = restored

    async def remove(self, record_id: str) -> Optional[PendingMutation]:
        index = self._index(record_id)
        if index < 0:
            return None
        mutation = PendingMutation(MutationKind.DELETE, record_id)
        mutation.apply(self.items[index])
        del self.items[index]

        try:
            await self._send(mutation, self.api.delete(f"{self.endpoint}/{record_id}"))
        except ApiError as e:
            # Reinserted at the end; the previous position is not kept.
            self.items.append(mutation.pre_image)
            mutation.roll_back(e.message)
            self._fail("delete", e)
            return mutation
        mutation.confirm()
        self.notify(Notice("success", f"{self.label} deleted"))
        return mutation

class Workspace:
    """The signed-in user's tasks and notes."""

    def __init__(self, api: ApiClient, notify: Optional[Notifier] = None):
        self.api = api
        self.tasks = ResourceList(api, "/tasks", "Task", notify)
        self.notes = ResourceList(api, "/notes", "Note", notify)

    async def load(self) -> None:
        await asyncio.gather(self.tasks.load(), self.notes.load())

    @property
    def completed_task_count(self) -> int:
        return sum(1 for t in self.tasks.items if t.get("completed"))

    async def create_task(self, title: str, due_date: Optional[str] = None, priority: str = "medium"):
        return await self.tasks.create({"title": title, "due_date": due_date or None, "priority": priority or "medium"})

    async def toggle_task(self, task_id: str, completed: bool):
        return await self.tasks.update(task_id, {"completed": completed},
                                       success_text="Task completed!" if completed else None)

    async def update_task(self, task_id: str, **changes):
        return await self.tasks.update(task_id, changes, success_text="Task updated")

    async def delete_task(self, task_id: str):
        return await self.tasks.remove(task_id)

    async def create_note(self, content: str):
        return await self.notes.create({"content": content})

    async def update_note(self, note_id: str, content: str):
        return await self.notes.update(note_id, {"content": content}, success_text="Note updated")

    async def delete_note(self, note_id: str):
        return await self.notes.remove(note_id)
