"""Service container shared by the trust API, jobs and tests."""

from __future__ import annotations

from typing import Optional

import asyncpg
from redis.asyncio import Redis

from railtrust.infra.redis import RedisProxy, redis_client
from railtrust.trust.domain.engine_config import EngineConfig, load_engine_config
from railtrust.trust.domain.gate import ProtectedActionGate
from railtrust.trust.domain.identities import IdentityRepository, InMemoryIdentityRepository
from railtrust.trust.domain.listings import InMemoryListingIndex, ListingIndex
from railtrust.trust.domain.lockout import TrustStateMachine
from railtrust.trust.domain.rate_limiter import CounterStore, RateLimiter
from railtrust.trust.domain.ranking import RankingComposer
from railtrust.trust.domain.reporting import (
    InMemoryReportRepository,
    ReportGuard,
    ReportRepository,
    SerialReporterMonitor,
)
from railtrust.trust.domain.visibility import VisibilityGate
from railtrust.trust.infra.counter_store import RedisCounterStore
from railtrust.trust.infra.identity_repo import PostgresIdentityRepository
from railtrust.trust.infra.listing_repo import PostgresListingIndex
from railtrust.trust.infra.report_repo import PostgresReportRepository

_config: EngineConfig = load_engine_config()
_identity_repo: IdentityRepository = InMemoryIdentityRepository()
_report_repo: ReportRepository = InMemoryReportRepository()
_listing_index: ListingIndex = InMemoryListingIndex()
_counter_store: CounterStore = RedisCounterStore(redis_client)

_rate_limiter: RateLimiter
_state_machine: TrustStateMachine
_serial_monitor: SerialReporterMonitor
_report_guard: ReportGuard
_visibility_gate: VisibilityGate
_ranking: RankingComposer
_gate: ProtectedActionGate


def _build() -> None:
    global _rate_limiter, _state_machine, _serial_monitor, _report_guard, _visibility_gate, _ranking, _gate
    _rate_limiter = RateLimiter(_counter_store, _config.rate_limit)
    _state_machine = TrustStateMachine(_identity_repo, _config.lockout)
    _serial_monitor = SerialReporterMonitor(_identity_repo, _report_repo, _config.reporting)
    _report_guard = ReportGuard(
        _identity_repo,
        _report_repo,
        _config.reporting,
        _serial_monitor,
        listings=_listing_index,
        max_write_attempts=_config.lockout.max_write_attempts,
    )
    _visibility_gate = VisibilityGate(_config.visibility, add_on_aliases=_config.ranking.add_on_aliases)
    _ranking = RankingComposer(_config.ranking)
    _gate = ProtectedActionGate(
        identities=_identity_repo,
        rate_limiter=_rate_limiter,
        state_machine=_state_machine,
        listings=_listing_index,
        report_guard=_report_guard,
        content_config=_config.content,
    )


_build()


def configure(
    *,
    config: Optional[EngineConfig] = None,
    identity_repository: Optional[IdentityRepository] = None,
    report_repository: Optional[ReportRepository] = None,
    listing_index: Optional[ListingIndex] = None,
    counter_store: Optional[CounterStore] = None,
) -> None:
    global _config, _identity_repo, _report_repo, _listing_index, _counter_store
    if config is not None:
        _config = config
    if identity_repository is not None:
        _identity_repo = identity_repository
    if report_repository is not None:
        _report_repo = report_repository
    if listing_index is not None:
        _listing_index = listing_index
    if counter_store is not None:
        _counter_store = counter_store
    _build()


def configure_postgres(
    pool: asyncpg.Pool,
    redis_conn: Redis | RedisProxy,
    *,
    config_path: Optional[str] = None,
) -> None:
    configure(
        config=load_engine_config(config_path) if config_path else None,
        identity_repository=PostgresIdentityRepository(pool),
        report_repository=PostgresReportRepository(pool),
        listing_index=PostgresListingIndex(pool),
        counter_store=RedisCounterStore(redis_conn),
    )


def reset() -> None:
    """Restore in-memory repositories and the default tables."""

    configure(
        config=load_engine_config(),
        identity_repository=InMemoryIdentityRepository(),
        report_repository=InMemoryReportRepository(),
        listing_index=InMemoryListingIndex(),
        counter_store=RedisCounterStore(redis_client),
    )


def get_config() -> EngineConfig:
    return _config


def get_identity_repository() -> IdentityRepository:
    return _identity_repo


def get_report_repository() -> ReportRepository:
    return _report_repo


def get_listing_index() -> ListingIndex:
    return _listing_index


def get_state_machine() -> TrustStateMachine:
    return _state_machine


def get_report_guard() -> ReportGuard:
    return _report_guard


def get_visibility_gate() -> VisibilityGate:
    return _visibility_gate


def get_ranking_composer() -> RankingComposer:
    return _ranking


def get_action_gate() -> ProtectedActionGate:
    return _gate
