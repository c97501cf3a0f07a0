from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from monitor_client.config import ClientConfig, sanitize_url_for_logs
from monitor_client.services.mutations import MutationPipeline
from monitor_client.services.repository import RepositoryClient
from monitor_client.services.sync_cache import ALERTS, SERVICES, SETTINGS, USERS, SyncCache
from monitor_client.transport import ApiTransport

logger = logging.getLogger(__name__)


@dataclass
class ClientState:
    """Per-session container for the shared client singletons."""

    config: ClientConfig
    transport: ApiTransport
    repository: RepositoryClient
    cache: SyncCache
    mutations: MutationPipeline


# PUBLIC_INTERFACE
def create_state(config: ClientConfig, http_transport: Optional[httpx.AsyncBaseTransport] = None) -> ClientState:
    """Build a session: transport, repository, cache with the standard keys, mutation pipeline."""
    transport = ApiTransport(config.api_base_url, transport=http_transport)
    repository = RepositoryClient(transport)

    cache = SyncCache()
    cache.register(SERVICES.name, repository.list_services, poll_interval=config.services_poll_interval_sec)
    cache.register(ALERTS.name, repository.list_alerts)
    cache.register(USERS.name, repository.list_users)
    cache.register(SETTINGS.name, repository.get_settings)

    mutations = MutationPipeline(repository, cache, patch_in_place=config.cache_patch_in_place)

    logger.info(
        "Dashboard session created (api=%s, services poll=%ss, patch_in_place=%s)",
        sanitize_url_for_logs(config.api_base_url),
        config.services_poll_interval_sec,
        config.cache_patch_in_place,
    )
    return ClientState(
        config=config,
        transport=transport,
        repository=repository,
        cache=cache,
        mutations=mutations,
    )


# PUBLIC_INTERFACE
async def close_state(state: ClientState) -> None:
    """Tear down a session (logout/unmount): stop pollers, cancel fetches, close HTTP."""
    try:
        await state.cache.close()
    except Exception:
        logger.exception("Error closing sync cache")
    await state.transport.aclose()
    logger.info("Dashboard session closed")


# PUBLIC_INTERFACE
@asynccontextmanager
async def open_state(
    config: ClientConfig, http_transport: Optional[httpx.AsyncBaseTransport] = None
) -> AsyncIterator[ClientState]:
    """Async context manager pairing create_state()/close_state()."""
    state = create_state(config, http_transport=http_transport)
    try:
        yield state
    finally:
        await close_state(state)
