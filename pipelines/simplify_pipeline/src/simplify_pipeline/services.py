from __future__ import annotations

from dataclasses import dataclass

import httpx
from sqlalchemy.orm import Session, sessionmaker

from easylang_core.audit import ApiCallLog
from easylang_core.objects import ObjectRepository
from easylang_core.quota import QuotaTracker
from easylang_core.settings import Settings as CoreSettings
from easylang_core.store import FragmentStore
from simplify_pipeline.apis.registry import ApiRegistry, build_registry
from simplify_pipeline.decompose.decomposer import ObjectDecomposer
from simplify_pipeline.run.orchestrator import SimplificationOrchestrator
from simplify_pipeline.run.payload import ResultPayloads
from simplify_pipeline.run.progress import ProgressReporter
from simplify_pipeline.settings import Settings


@dataclass
class Services:
    """One instance of every collaborator, built once at startup and passed around."""

    session_factory: sessionmaker[Session]
    store: FragmentStore
    objects: ObjectRepository
    quota: QuotaTracker
    call_log: ApiCallLog
    apis: ApiRegistry
    decomposer: ObjectDecomposer
    orchestrator: SimplificationOrchestrator
    progress: ProgressReporter
    core_settings: CoreSettings
    settings: Settings

    def close(self) -> None:
        self.apis.close()


def build_services(
    session_factory: sessionmaker[Session],
    *,
    core_settings: CoreSettings,
    settings: Settings,
    transport: httpx.BaseTransport | None = None,
    apis: ApiRegistry | None = None,
) -> Services:
    store = FragmentStore(session_factory)
    objects = ObjectRepository(
        session_factory, store, delete_unused_fragments=core_settings.delete_unused_fragments
    )
    quota = QuotaTracker(session_factory)
    call_log = ApiCallLog(session_factory)
    if apis is None:
        apis = build_registry(
            settings, call_log=call_log, quota=quota, blog_id=core_settings.blog_id, transport=transport
        )
    else:
        for api in apis:
            quota.register_limits(api.name, api.quota_limits())
    decomposer = ObjectDecomposer()
    payloads = ResultPayloads(
        site_url=settings.site_url,
        view_url_template=settings.view_url_template,
        edit_url_template=settings.edit_url_template,
    )
    orchestrator = SimplificationOrchestrator(
        session_factory=session_factory,
        store=store,
        objects=objects,
        quota=quota,
        apis=apis,
        decomposer=decomposer,
        payloads=payloads,
        default_api=settings.active_api,
        items_per_tick=settings.text_limit_per_process,
        delete_unused_fragments=core_settings.delete_unused_fragments,
    )
    return Services(
        session_factory=session_factory,
        store=store,
        objects=objects,
        quota=quota,
        call_log=call_log,
        apis=apis,
        decomposer=decomposer,
        orchestrator=orchestrator,
        progress=ProgressReporter(orchestrator, payloads),
        core_settings=core_settings,
        settings=settings,
    )
