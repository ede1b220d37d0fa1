"""Per-request retry bookkeeping kept beside the transport.

Each logical request gets a RequestRecord that walks the state machine

    INITIAL -> SENT -> SUCCESS
                    -> FAILED_OTHER
                    -> FAILED_401_FIRST -> REFRESHING -> RETRIED_SUCCESS
                                                     -> RETRIED_FAILED

Terminal states have no way out. The retry counter lives here, never on the
httpx.Request.
"""

import itertools
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, FrozenSet, List, Optional

from lms_client.exceptions.errors import InvalidTransitionError


class RequestState(str, Enum):
    INITIAL = "INITIAL"
    SENT = "SENT"
    SUCCESS = "SUCCESS"
    FAILED_401_FIRST = "FAILED_401_FIRST"
    REFRESHING = "REFRESHING"
    RETRIED_SUCCESS = "RETRIED_SUCCESS"
    RETRIED_FAILED = "RETRIED_FAILED"
    FAILED_OTHER = "FAILED_OTHER"


TERMINAL_STATES: FrozenSet[RequestState] = frozenset(
    {
        RequestState.SUCCESS,
        RequestState.RETRIED_SUCCESS,
        RequestState.RETRIED_FAILED,
        RequestState.FAILED_OTHER,
    }
)

_TRANSITIONS: Dict[RequestState, FrozenSet[RequestState]] = {
    RequestState.INITIAL: frozenset({RequestState.SENT}),
    RequestState.SENT: frozenset(
        {
            RequestState.SUCCESS,
            RequestState.FAILED_401_FIRST,
            RequestState.FAILED_OTHER,
        }
    ),
    RequestState.FAILED_401_FIRST: frozenset({RequestState.REFRESHING}),
    RequestState.REFRESHING: frozenset(
        {RequestState.RETRIED_SUCCESS, RequestState.RETRIED_FAILED}
    ),
}


@dataclass
class RequestRecord:
    request_id: int
    method: str
    path: str
    state: RequestState = RequestState.INITIAL
    retries: int = 0
    history: List[RequestState] = field(default_factory=list)

    def __post_init__(self):
        self.history.append(self.state)

    @property
    def retried(self) -> bool:
        return self.retries > 0

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: RequestState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise InvalidTransitionError(
                f"request {self.request_id} ({self.method} {self.path}): "
                f"{self.state.value} -> {new_state.value} is not allowed"
            )
        self.state = new_state
        self.history.append(new_state)


class RequestLedger:
    """Keeps the most recent request records (bounded)."""

    def __init__(self, max_records: int = 200):
        self._ids = itertools.count(1)
        self._records: Deque[RequestRecord] = deque(maxlen=max_records)

    def open(self, method: str, path: str) -> RequestRecord:
        record = RequestRecord(next(self._ids), method, path)
        self._records.append(record)
        return record

    @property
    def records(self) -> List[RequestRecord]:
        return list(self._records)

    def last(self, path: Optional[str] = None) -> Optional[RequestRecord]:
        for record in reversed(self._records):
            if path is None or record.path == path:
                return record
        return None

    def clear(self) -> None:
        self._records.clear()
