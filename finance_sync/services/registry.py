"""
Entity Registry

Static mapping from EntityType to the remote client that can list it.
The clients are external collaborators: the registry only requires an
async list(sort_key, limit) on each one and treats what comes back as
opaque records.
"""

from typing import Any, Iterator, Mapping, Protocol, Union, runtime_checkable

from finance_sync.models.entities import EntityType, Records


@runtime_checkable
class EntityClient(Protocol):
    """Anything that can list one financial collection."""
    
    async def list(self, sort_key: str, limit: int) -> Records:
        ...


@runtime_checkable
class MutableEntityClient(EntityClient, Protocol):
    """Entity client that also supports create/update/delete."""
    
    async def create(self, data: dict) -> Any:
        ...
    
    async def update(self, record_id: Any, data: dict) -> Any:
        ...
    
    async def delete(self, record_id: Any) -> Any:
        ...


class MissingEntityClientError(LookupError):
    """No client is registered for an entity type."""
    
    def __init__(self, entity_type: EntityType):
        self.entity_type = entity_type
        super().__init__(f"No entity client registered for {entity_type.value}")


class EntityRegistry:
    """
    Immutable EntityType -> EntityClient mapping.
    
    A registry does not have to cover every entity type. The
    orchestrator skips types with no client.
    """
    
    def __init__(self, clients: Mapping[Union[EntityType, str], EntityClient]):
        self._clients: dict[EntityType, EntityClient] = {}
        for key, client in clients.items():
            entity_type = EntityType.coerce(key)
            if not callable(getattr(client, "list", None)):
                raise TypeError(f"Client for {entity_type.value} has no list() method")
            self._clients[entity_type] = client
    
    def get(self, entity_type: EntityType) -> EntityClient:
        try:
            return self._clients[entity_type]
        except KeyError:
            raise MissingEntityClientError(entity_type) from None
    
    async def list_records(self, entity_type: EntityType, sort_key: str, limit: int) -> Records:
        """Call list() on the registered client for entity_type."""
        return await self.get(entity_type).list(sort_key, limit)
    
    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._clients
    
    def __iter__(self) -> Iterator[EntityType]:
        return iter(self._clients)
    
    def __len__(self) -> int:
        return len(self._clients)
