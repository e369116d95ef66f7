"""
Optimistic Mutations

Create/update/delete with an immediate local effect:

1. Cancel any in-flight fetch for the entity (it must not overwrite
   the speculative state)
2. Snapshot the visible records
3. Apply the speculative change
4. Await the remote commit
   - success: keep the change, then force-refresh so server state wins
   - failure: restore the snapshot exactly

The outcome is returned as MutationApplied / MutationRolledBack; remote
failures are never raised to the caller.
"""

import itertools
from typing import Any, Awaitable, Callable, Optional

from finance_sync.models.entities import (
    EntityType,
    MutationApplied,
    MutationOutcome,
    MutationRolledBack,
    Records,
)
from finance_sync.models.events import SyncEventBuilder
from finance_sync.orchestrator import EntityTypeLike, FinancialDataOrchestrator
from finance_sync.services.registry import MutableEntityClient


Speculate = Callable[[Records], Records]
Commit = Callable[[], Awaitable[Any]]

_temp_ids = itertools.count(1)


class OptimisticMutation:
    """Transactional speculative update of one entity collection."""
    
    def __init__(
        self,
        orchestrator: FinancialDataOrchestrator,
        entity_type: EntityTypeLike,
        speculate: Speculate,
        commit: Commit,
        operation: str = "mutation",
        refresh_on_success: bool = True,
    ):
        self._orchestrator = orchestrator
        self._entity_type = EntityType.coerce(entity_type)
        self._speculate = speculate
        self._commit = commit
        self._operation = operation
        self._refresh_on_success = refresh_on_success
    
    async def run(self) -> MutationOutcome:
        orchestrator = self._orchestrator
        entity_type = self._entity_type
        audit_logger = orchestrator.audit_logger
        
        orchestrator.cancel(entity_type)
        snapshot = list(orchestrator.get_data(entity_type))
        orchestrator.replace_local_data(entity_type, self._speculate(list(snapshot)))
        
        try:
            result = await self._commit()
        except Exception as e:
            reason = str(e) or type(e).__name__
            orchestrator.replace_local_data(entity_type, snapshot)
            audit_logger.log(
                SyncEventBuilder.mutation_rolled_back(entity_type, self._operation, reason)
            )
            return MutationRolledBack(entity_type=entity_type, reason=reason)
        
        audit_logger.log(SyncEventBuilder.mutation_applied(entity_type, self._operation))
        if self._refresh_on_success:
            await orchestrator.refresh_data([entity_type])
        return MutationApplied(entity_type=entity_type, result=result)


def _temp_id() -> str:
    return f"temp-{next(_temp_ids)}"


async def create_record(
    orchestrator: FinancialDataOrchestrator,
    entity_type: EntityTypeLike,
    client: MutableEntityClient,
    data: dict,
    refresh_on_success: bool = True,
) -> MutationOutcome:
    """Append data (under a temporary id) and create it remotely."""
    placeholder = {**data, "id": data.get("id", _temp_id())}
    return await OptimisticMutation(
        orchestrator,
        entity_type,
        speculate=lambda records: records + [placeholder],
        commit=lambda: client.create(data),
        operation="create",
        refresh_on_success=refresh_on_success,
    ).run()


async def update_record(
    orchestrator: FinancialDataOrchestrator,
    entity_type: EntityTypeLike,
    client: MutableEntityClient,
    record_id: Any,
    data: dict,
    refresh_on_success: bool = True,
) -> MutationOutcome:
    """Merge data into the record with record_id and update it remotely."""
    def speculate(records: Records) -> Records:
        return [
            {**record, **data} if _record_id(record) == record_id else record
            for record in records
        ]
    
    return await OptimisticMutation(
        orchestrator,
        entity_type,
        speculate=speculate,
        commit=lambda: client.update(record_id, data),
        operation="update",
        refresh_on_success=refresh_on_success,
    ).run()


async def delete_record(
    orchestrator: FinancialDataOrchestrator,
    entity_type: EntityTypeLike,
    client: MutableEntityClient,
    record_id: Any,
    refresh_on_success: bool = True,
) -> MutationOutcome:
    """Drop the record with record_id and delete it remotely."""
    return await OptimisticMutation(
        orchestrator,
        entity_type,
        speculate=lambda records: [r for r in records if _record_id(r) != record_id],
        commit=lambda: client.delete(record_id),
        operation="delete",
        refresh_on_success=refresh_on_success,
    ).run()


def _record_id(record: Any) -> Optional[Any]:
    if isinstance(record, dict):
        return record.get("id")
    return getattr(record, "id", None)
