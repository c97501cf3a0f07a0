from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, NamedTuple, Optional, Tuple, Union

from monitor_client.errors import ClientError
from monitor_client.schemas.alerts import Alert
from monitor_client.schemas.services import Service, ServiceCreate, ServiceUpdate
from monitor_client.schemas.settings import Settings
from monitor_client.schemas.users import User, UserCreate, UserId, UserUpdate
from monitor_client.services.repository import RepositoryClient
from monitor_client.services.sync_cache import ALERTS, SERVICES, SETTINGS, USERS, CacheKey, SyncCache

logger = logging.getLogger(__name__)


class EntityUpdate(NamedTuple):
    """Payload for update mutations: target id plus the changed fields."""

    id: Any
    changes: Any


# (cached data, payload, server result) -> new cached data
Patch = Callable[[Any, Any, Any], Any]


@dataclass(frozen=True)
class Effect:
    """A cache key a mutation may have changed, with an optional in-place patch."""

    key: CacheKey
    patch: Optional[Patch] = None


@dataclass(frozen=True)
class Mutation:
    """A repository write plus the cache keys it affects."""

    name: str
    call: Callable[[RepositoryClient, Any], Awaitable[Any]]
    effects: Tuple[Effect, ...]


def _upsert_result(items: List[Any], payload: Any, result: Any) -> List[Any]:
    out = [result if item.id == result.id else item for item in items]
    if not any(item.id == result.id for item in items):
        out.append(result)
    return out


def _remove_payload_id(items: List[Any], payload: Any, result: Any) -> List[Any]:
    return [item for item in items if str(item.id) != str(payload)]


def _replace_with_result(current: Any, payload: Any, result: Any) -> Any:
    return result


CREATE_SERVICE = Mutation(
    name="create_service",
    call=lambda repo, p: repo.create_service(p),
    effects=(Effect(SERVICES, _upsert_result),),
)

# Alerts carry a snapshot of the service name, so service edits/deletes touch them too.
UPDATE_SERVICE = Mutation(
    name="update_service",
    call=lambda repo, p: repo.update_service(p.id, p.changes),
    effects=(Effect(SERVICES, _upsert_result), Effect(ALERTS)),
)

DELETE_SERVICE = Mutation(
    name="delete_service",
    call=lambda repo, p: repo.delete_service(p),
    effects=(Effect(SERVICES, _remove_payload_id), Effect(ALERTS)),
)

RESOLVE_ALERT = Mutation(
    name="resolve_alert",
    call=lambda repo, p: repo.resolve_alert(p),
    effects=(Effect(ALERTS, _upsert_result),),
)

VERIFY_ALERT = Mutation(
    name="verify_alert",
    call=lambda repo, p: repo.verify_alert(p),
    effects=(Effect(ALERTS, _upsert_result),),
)

CREATE_USER = Mutation(
    name="create_user",
    call=lambda repo, p: repo.create_user(p),
    effects=(Effect(USERS, _upsert_result),),
)

UPDATE_USER = Mutation(
    name="update_user",
    call=lambda repo, p: repo.update_user(p.id, p.changes),
    effects=(Effect(USERS, _upsert_result),),
)

DELETE_USER = Mutation(
    name="delete_user",
    call=lambda repo, p: repo.delete_user(p),
    effects=(Effect(USERS, _remove_payload_id),),
)

SAVE_SETTINGS = Mutation(
    name="save_settings",
    call=lambda repo, p: repo.save_settings(p),
    effects=(Effect(SETTINGS, _replace_with_result),),
)


class MutationPipeline:
    """
    Issue a write, then settle the cache.

    Success: every affected key is invalidated (or, with patch_in_place, patched with
    the server-returned entity). Failure: the error propagates unchanged and the cache
    is not touched. Nothing is applied optimistically before the backend confirms.
    Concurrent mutations are not serialized here.
    """

    def __init__(self, repository: RepositoryClient, cache: SyncCache, patch_in_place: bool = False):
        self._repository = repository
        self._cache = cache
        self._patch_in_place = patch_in_place

    # PUBLIC_INTERFACE
    async def mutate(self, mutation: Mutation, payload: Any = None) -> Any:
        """Run one mutation through the settle protocol and return the server result."""
        try:
            result = await mutation.call(self._repository, payload)
        except ClientError as exc:
            logger.warning("Mutation %s failed; cache left unchanged: %s", mutation.name, exc)
            raise

        self._settle(mutation, payload, result)
        return result

    def _settle(self, mutation: Mutation, payload: Any, result: Any) -> None:
        for effect in mutation.effects:
            if self._patch_in_place and effect.patch is not None:
                patch = effect.patch
                if self._cache.patch(effect.key, lambda current: patch(current, payload, result)):
                    logger.debug("Mutation %s patched key=%s", mutation.name, effect.key)
                    continue
            self._cache.invalidate_kind(effect.key.name)

    # -------- typed helpers --------

    async def create_service(self, payload: ServiceCreate) -> Service:
        return await self.mutate(CREATE_SERVICE, payload)

    async def update_service(self, service_id: int, changes: Union[ServiceUpdate, dict]) -> Service:
        return await self.mutate(UPDATE_SERVICE, EntityUpdate(service_id, changes))

    async def delete_service(self, service_id: int) -> None:
        await self.mutate(DELETE_SERVICE, service_id)

    async def resolve_alert(self, alert_id: int) -> Alert:
        return await self.mutate(RESOLVE_ALERT, alert_id)

    async def verify_alert(self, alert_id: int) -> Alert:
        return await self.mutate(VERIFY_ALERT, alert_id)

    async def create_user(self, payload: UserCreate) -> User:
        return await self.mutate(CREATE_USER, payload)

    async def update_user(self, user_id: UserId, changes: Union[UserUpdate, dict]) -> User:
        return await self.mutate(UPDATE_USER, EntityUpdate(user_id, changes))

    async def delete_user(self, user_id: UserId) -> None:
        await self.mutate(DELETE_USER, user_id)

    async def save_settings(self, settings: Settings) -> Settings:
        return await self.mutate(SAVE_SETTINGS, settings)
