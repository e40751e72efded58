from __future__ import annotations

import copy
import threading
from typing import Any, Dict, Optional

from .state import FocusState


class MemoryStore:
    """In-process state store; holds the state as the same dict blob a database would."""

    def __init__(self, initial: Optional[FocusState] = None):
        self._blob: Optional[Dict[str, Any]] = initial.to_dict() if initial else None
        self.lock = threading.Lock()

    def load(self) -> FocusState:
        with self.lock:
            return FocusState.from_dict(copy.deepcopy(self._blob))

    def save(self, state: FocusState) -> None:
        with self.lock:
            self._blob = state.to_dict()
