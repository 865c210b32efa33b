"""
Shared fixtures: in-memory database, stub simplification APIs, service container.
"""

from __future__ import annotations

import pytest
from sqlalchemy.pool import StaticPool

from easylang_core.audit import ApiCallLog
from easylang_core.db import models  # noqa: F401
from easylang_core.db.base import Base
from easylang_core.db.session import make_engine, make_session_factory
from easylang_core.errors import EasyLanguageError, TransportError
from easylang_core.objects import ObjectRepository
from easylang_core.quota import QuotaLimits, QuotaTracker
from easylang_core.settings import Settings as CoreSettings
from easylang_core.store import FragmentStore
from simplify_pipeline.apis.client import ApiResult
from simplify_pipeline.apis.no_api import NoApi
from simplify_pipeline.apis.registry import ApiRegistry
from simplify_pipeline.services import build_services
from simplify_pipeline.settings import Settings


class UppercaseApi:
    """Simplifies by upper-casing; texts listed in `failing` come back empty."""

    def __init__(self, name: str = "stub", *, limits: QuotaLimits | None = None, configured: bool = True) -> None:
        self.name = name
        self.title = name.upper()
        self.last_error: EasyLanguageError | None = None
        self.calls: list[str] = []
        self.failing: set[str] = set()
        self.configured = configured
        self._limits = limits or QuotaLimits()

    def is_configured(self) -> bool:
        return self.configured

    def quota_limits(self) -> QuotaLimits:
        return self._limits

    def supports(self, source_language: str, target_language: str) -> bool:
        return True

    def call(self, text, source_language, target_language, is_html, is_test=False):
        self.calls.append(text)
        self.last_error = None
        if text in self.failing:
            self.last_error = TransportError("HTTP 500", http_status=500)
            return None
        return ApiResult(simplified_text=text.upper(), job_id=1)


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return FragmentStore(session_factory)


@pytest.fixture
def objects(session_factory, store):
    return ObjectRepository(session_factory, store)


@pytest.fixture
def quota(session_factory):
    return QuotaTracker(session_factory)


@pytest.fixture
def call_log(session_factory):
    return ApiCallLog(session_factory)


@pytest.fixture
def stub_api():
    return UppercaseApi()


@pytest.fixture
def core_settings():
    return CoreSettings(database_url="sqlite://", blog_id=1, default_language="de_DE")


@pytest.fixture
def pipeline_settings():
    return Settings(active_api="stub", text_limit_per_process=2, site_url="https://example.org")


@pytest.fixture
def services(session_factory, core_settings, pipeline_settings, stub_api):
    registry = ApiRegistry()
    registry.register(stub_api)
    registry.register(NoApi())
    services = build_services(
        session_factory, core_settings=core_settings, settings=pipeline_settings, apis=registry
    )
    yield services
    services.close()


@pytest.fixture
def gutenberg_post(services):
    """Post 10 with a title and two paragraph blocks."""
    return services.objects.save_object(
        object_id=10,
        object_type="post",
        title="Hallo Welt",
        content=(
            "<!-- wp:paragraph -->\n<p>Das ist ein Text.</p>\n<!-- /wp:paragraph -->\n\n"
            "<!-- wp:paragraph -->\n<p>Noch ein <strong>Absatz</strong>.</p>\n<!-- /wp:paragraph -->"
        ),
        source_language="de_DE",
    )
