"""
Bounded, injectable history of booking actions that can be undone.

The history lives in memory and belongs to whichever service records into
it; nothing here is module-global.
"""

from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.models import AppointmentStatus

DEFAULT_CAPACITY = 50


class ActionKind(str, Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"


@dataclass(frozen=True)
class BookingAction:
    kind: ActionKind
    appointment_id: str
    description: str
    previous_status: Optional[AppointmentStatus] = None
    new_status: Optional[AppointmentStatus] = None
    timestamp: DateTime = field(default_factory=lambda: pendulum.now("UTC"))
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class ActionHistory:
    """
    Ring buffer of the most recent booking actions.

    Once ``capacity`` actions are stored, recording a new one drops the
    oldest.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._actions: Deque[BookingAction] = deque(maxlen=capacity)

    def record(self, action: BookingAction) -> BookingAction:
        self._actions.append(action)
        return action

    def list(self) -> List[BookingAction]:
        """Return recorded actions, newest first."""
        return list(reversed(self._actions))

    def get(self, action_id: str) -> Optional[BookingAction]:
        for action in self._actions:
            if action.id == action_id:
                return action
        return None

    def remove(self, action_id: str) -> Optional[BookingAction]:
        action = self.get(action_id)
        if action is not None:
            self._actions.remove(action)
        return action

    def clear(self) -> None:
        self._actions.clear()

    def __len__(self) -> int:
        return len(self._actions)
