"""Which mutations a record still accepts, as a function of its age."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from coaching.core.clock import ensure_aware


class EditState(str, Enum):
    FRESH = "FRESH"  # inside both windows
    LOCKED = "LOCKED"  # past edit window, inside delete window
    IMMUTABLE = "IMMUTABLE"  # past delete window


@dataclass(frozen=True)
class Editability:
    state: EditState
    hours_since_marked: float

    @property
    def edit_open(self) -> bool:
        """Non-admin edits allowed."""
        return self.state == EditState.FRESH

    @property
    def delete_open(self) -> bool:
        return self.state != EditState.IMMUTABLE

    @property
    def admin_edit_open(self) -> bool:
        return self.state != EditState.IMMUTABLE


def classify(
    now: datetime,
    marked_at: datetime,
    edit_window_hours: float,
    delete_window_hours: float,
) -> Editability:
    """An elapsed time exactly equal to a window is still inside it.

    Past the delete window nothing is mutable, even when the edit window is longer.
    """
    hours = (ensure_aware(now) - ensure_aware(marked_at)).total_seconds() / 3600

    if hours > delete_window_hours:
        state = EditState.IMMUTABLE
    elif hours <= edit_window_hours:
        state = EditState.FRESH
    else:
        state = EditState.LOCKED
    return Editability(state=state, hours_since_marked=hours)
