"""
Request Controller

Cooperative cancellation for entity fetches. A remote list() call cannot
be stopped once started; instead every fetch carries a token, and the
fetch checks the token right before it touches shared state. A
superseded fetch still completes on the network, but its result is
dropped.

INVARIANT: at most one live (non-aborted) token per EntityType.
Beginning a new fetch aborts the previous token for that type first.
"""

import itertools
from typing import Optional

from finance_sync.models.entities import EntityType


class CancellationToken:
    """Abort flag owned by the RequestController, passed by reference."""
    
    __slots__ = ("request_id", "entity_type", "_aborted")
    
    def __init__(self, request_id: int, entity_type: EntityType):
        self.request_id = request_id
        self.entity_type = entity_type
        self._aborted = False
    
    @property
    def aborted(self) -> bool:
        return self._aborted
    
    def abort(self) -> None:
        self._aborted = True
    
    def __repr__(self) -> str:
        state = "aborted" if self._aborted else "live"
        return f"CancellationToken({self.request_id}, {self.entity_type.value}, {state})"


class RequestController:
    """Issues and tracks one live token per entity type."""
    
    def __init__(self):
        self._live: dict[EntityType, CancellationToken] = {}
        self._ids = itertools.count(1)
    
    def begin(self, entity_type: EntityType) -> CancellationToken:
        """Abort the current token for entity_type, then issue a new one."""
        previous = self._live.pop(entity_type, None)
        if previous is not None:
            previous.abort()
        token = CancellationToken(next(self._ids), entity_type)
        self._live[entity_type] = token
        return token
    
    def is_aborted(self, token: CancellationToken) -> bool:
        return token.aborted
    
    def current(self, entity_type: EntityType) -> Optional[CancellationToken]:
        return self._live.get(entity_type)
    
    def release(self, token: CancellationToken) -> None:
        """Forget a finished fetch's token if it is still the live one."""
        if self._live.get(token.entity_type) is token:
            del self._live[token.entity_type]
    
    def abort_all(self) -> int:
        """Abort every live token (consumer teardown). Returns how many."""
        tokens = list(self._live.values())
        self._live.clear()
        for token in tokens:
            token.abort()
        return len(tokens)
    
    @property
    def live_count(self) -> int:
        return len(self._live)
