"""
Consult Setup — initializes and wires together all consult components.

Called once during app startup.  ``build_services`` is also used directly
by tests to get a fresh, fully wired in-memory instance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sutra import settings
from sutra.consult.feed import MessageFeed
from sutra.consult.lifecycle import SessionLifecycleManager
from sutra.consult.messaging import SessionMessenger
from sutra.consult.permissions import SessionAccessChecker
from sutra.consult.profiles import ProfileService
from sutra.consult.referrals import ReferralIssuer
from sutra.consult.store import ConsultStore, InMemoryConsultStore
from sutra.consult.voice import VoiceProcessingClient

logger = logging.getLogger("consult.setup")


@dataclass
class ConsultServices:
    store: ConsultStore
    feed: MessageFeed
    access: SessionAccessChecker
    lifecycle: SessionLifecycleManager
    messenger: SessionMessenger
    referrals: ReferralIssuer
    profiles: ProfileService
    voice: VoiceProcessingClient


# Module-level singleton (set during initialize)
_services: ConsultServices | None = None


def build_services(
    store: ConsultStore | None = None,
    voice_client: VoiceProcessingClient | None = None,
    base_url: str = settings.APP_BASE_URL,
) -> ConsultServices:
    store = store if store is not None else InMemoryConsultStore()

    # 1. Change feed listens to every store insert
    feed = MessageFeed()
    store.add_insert_listener(feed.on_insert)

    # 2. Membership checks
    access = SessionAccessChecker(store)

    # 3. Core components
    return ConsultServices(
        store=store,
        feed=feed,
        access=access,
        lifecycle=SessionLifecycleManager(store, access),
        messenger=SessionMessenger(store, access),
        referrals=ReferralIssuer(store, access, base_url=base_url),
        profiles=ProfileService(store),
        voice=voice_client or VoiceProcessingClient(),
    )


def _default_store() -> ConsultStore:
    if settings.STORE_BACKEND == "gcs":
        from sutra.consult.gcs_store import GCSConsultStore
        from sutra.dependencies import get_gcs

        gcs = get_gcs()
        # Eager init to avoid cold-start on first request
        gcs._ensure_initialized()
        return GCSConsultStore(gcs, prefix=settings.STORE_PREFIX)
    return InMemoryConsultStore()


def initialize_consult(store: ConsultStore | None = None) -> ConsultServices:
    """Wire the consult components and keep them as the process-wide instance."""
    global _services

    logger.info("Initializing consult services (store=%s)...", settings.STORE_BACKEND if store is None else type(store).__name__)
    _services = build_services(store if store is not None else _default_store())
    logger.info(
        "Consult services initialized: store=%s, voice_processing=%s",
        type(_services.store).__name__,
        "on" if _services.voice.enabled else "off",
    )
    return _services


def get_services() -> ConsultServices | None:
    return _services
