"""
Simplification Orchestrator.

A run drives every pending fragment of one simplified copy through one API, a few fragments
per tick. State lives in `simplification_run` rows so any process can pick up the next tick.

    NOT_STARTED -> LOCKED_RUNNING -> DONE | PARTIAL | FAILED
                                  -> CANCELLED (reset)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from easylang_core.db.base import utcnow
from easylang_core.db.enums import FragmentState, QuotaStatus, RunKind, RunStatus
from easylang_core.db.models import ContentObject, SimplificationRun
from easylang_core.db.transaction import session_scope
from easylang_core.errors import (
    AlreadyLockedError,
    FragmentFailure,
    NotConfiguredError,
    ObjectNotFoundError,
    StorageError,
)
from easylang_core.objects import ObjectRepository, ref_of
from easylang_core.quota import QuotaTracker
from easylang_core.store import FragmentFilter, FragmentStore
from simplify_pipeline.apis.client import SimplificationApi
from simplify_pipeline.apis.registry import ApiRegistry
from simplify_pipeline.decompose.decomposer import ObjectDecomposer
from simplify_pipeline.run.payload import ResultPayloads

logger = logging.getLogger(__name__)

# Deletion runs lock the original across all languages.
DELETION_LOCK = "*"

# Quota answers that keep a run from starting; the caller may queue the object instead.
BLOCKING_QUOTA = frozenset(
    {QuotaStatus.above_entry_limit, QuotaStatus.above_text_limit, QuotaStatus.exceeded}
)


@dataclass(frozen=True)
class RunState:
    run_id: uuid.UUID | None
    kind: RunKind
    status: RunStatus
    count: int
    max: int
    results: dict[str, Any] | None = None
    failures: tuple[FragmentFailure, ...] = ()
    quota_status: QuotaStatus = QuotaStatus.ok
    content_object_id: uuid.UUID | None = None
    target_language: str | None = None

    @property
    def running(self) -> bool:
        return self.status == RunStatus.locked_running

    @property
    def started(self) -> bool:
        return self.run_id is not None


@dataclass
class AutomaticResult:
    processed: int = 0
    succeeded: int = 0
    failures: list[FragmentFailure] = field(default_factory=list)
    copies: list[uuid.UUID] = field(default_factory=list)


def _state_of(run: SimplificationRun) -> RunState:
    return RunState(
        run_id=run.run_id,
        kind=run.kind,
        status=run.status,
        count=run.count,
        max=run.max,
        results=run.results,
        failures=tuple(FragmentFailure.model_validate(f) for f in (run.failures or [])),
        content_object_id=run.content_object_id,
        target_language=run.target_language,
    )


class SimplificationOrchestrator:
    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session],
        store: FragmentStore,
        objects: ObjectRepository,
        quota: QuotaTracker,
        apis: ApiRegistry,
        decomposer: ObjectDecomposer,
        payloads: ResultPayloads | None = None,
        default_api: str = "no_api",
        items_per_tick: int = 1,
        delete_unused_fragments: bool = False,
    ) -> None:
        self._session_factory = session_factory
        self.store = store
        self.objects = objects
        self.quota = quota
        self.apis = apis
        self.decomposer = decomposer
        self.payloads = payloads or ResultPayloads()
        self.default_api = default_api
        self.items_per_tick = max(1, items_per_tick)
        self._delete_unused = delete_unused_fragments

    # Copies

    def prepare_copy(
        self,
        original: ContentObject,
        target_language: str,
        *,
        api_name: str | None = None,
        prevent_automatic: bool = False,
        copy_object_id: int | None = None,
    ) -> ContentObject:
        """Create (or reuse) the simplified copy and link the original's fragments to it."""
        copy = self.objects.create_copy(
            original,
            target_language,
            api_name=api_name or self.default_api,
            prevent_automatic=prevent_automatic,
            object_id=copy_object_id,
        )
        self._link_fragments(original, copy)
        return copy

    def refresh_copy(self, copy: ContentObject) -> int:
        """
        Re-read the original after it changed: link new fragments, drop links to texts that are
        gone. Returns the number of stale links removed.
        """
        original = self._original_of(copy)
        current = self._link_fragments(original, copy)
        removed = 0
        for link in self.store.get_links(ref_of(copy)):
            if link.fragment_id not in current:
                self.store.unlink(link.fragment_id, ref_of(copy), delete_unused=self._delete_unused)
                removed += 1
        self.objects.clear_changed(original.content_object_id, copy.target_language)
        if removed:
            logger.info("removed %d stale fragment links from copy %s", removed, copy.content_object_id)
        return removed

    def reassemble_copy(self, copy: ContentObject) -> ContentObject:
        """Write the original's structure with all available simplifications into the copy."""
        original = self._original_of(copy)
        texts = self.decomposer.decompose(original)
        fragment_by_identifier: dict[str, uuid.UUID] = {}
        for text in texts:
            fragment = self.store.get_fragment_by_original(text.text, original.source_language)
            if fragment is not None:
                fragment_by_identifier[text.identifier] = fragment.fragment_id
        simplified = self.store.simplifications_for(fragment_by_identifier.values(), copy.target_language)
        replacements = {
            identifier: simplified[fragment_id].simplified_content
            for identifier, fragment_id in fragment_by_identifier.items()
            if fragment_id in simplified
        }
        result = self.decomposer.reassemble(original, replacements)
        return self.objects.update_text(copy.content_object_id, title=result.title, content=result.content)

    # Runs

    def start_run(
        self,
        obj: ContentObject,
        target_language: str,
        api_name: str | None = None,
        max_items_per_tick: int | None = None,
        *,
        user_id: int = 0,
        prevent_automatic: bool = False,
    ) -> RunState:
        """
        Start simplifying `obj` (an original or its copy) into `target_language`.
        Raises NotConfiguredError or AlreadyLockedError before any fragment is processed.
        """
        if api_name is None and obj.original_id is not None:
            api_name = obj.api_name
        api = self.apis.get(api_name or self.default_api)
        if not api.is_configured():
            raise NotConfiguredError(f"{api.title} is not configured")
        copy = self._copy_for(obj, target_language, api.name, prevent_automatic)

        # Nothing touches the copy's links before the lock is held.
        run_id = uuid.uuid4()
        self.objects.acquire_lock(copy.content_object_id, target_language, run_id)
        try:
            self._sync_links(copy)
            pending = self._pending(copy)
            check = self.quota.check_object(api.name, [f.content for f in pending])
            if check.status in BLOCKING_QUOTA:
                self.objects.release_lock(copy.content_object_id, target_language)
                logger.info("not starting run for copy %s: %s", copy.content_object_id, check.status.value)
                return RunState(
                    run_id=None,
                    kind=RunKind.simplification,
                    status=RunStatus.not_started,
                    count=0,
                    max=len(pending),
                    results=self.payloads.quota_hint(
                        check.status.value,
                        entries=len(pending),
                        chars=check.chars_count,
                        automatic=not copy.automatic_mode_prevented,
                    ),
                    quota_status=check.status,
                    content_object_id=copy.content_object_id,
                    target_language=target_language,
                )

            with session_scope(self._session_factory) as session:
                run = SimplificationRun(
                    run_id=run_id,
                    kind=RunKind.simplification,
                    content_object_id=copy.content_object_id,
                    target_language=target_language,
                    api_name=api.name,
                    status=RunStatus.locked_running,
                    count=0,
                    max=len(pending),
                    succeeded=0,
                    max_items_per_tick=max(1, max_items_per_tick or self.items_per_tick),
                    user_id=user_id,
                    failures=[],
                )
                session.add(run)
        except Exception:
            self.objects.release_lock(copy.content_object_id, target_language)
            raise
        logger.info(
            "started run %s: copy=%s language=%s api=%s pending=%d",
            run_id,
            copy.content_object_id,
            target_language,
            api.name,
            len(pending),
        )
        if not pending:
            return self._finish_simplification(run_id)
        return self.get(run_id)

    def tick(self, run_id: uuid.UUID) -> RunState:
        run = self._load(run_id)
        if run.status.is_terminal:
            return _state_of(run)
        try:
            if run.kind == RunKind.deletion:
                return self._tick_deletion(run)
            return self._tick_simplification(run)
        except Exception as exc:
            self._fail(run, exc)
            raise

    def get(self, run_id: uuid.UUID) -> RunState:
        return _state_of(self._load(run_id))

    def latest_run(self, obj: ContentObject, target_language: str | None = None) -> RunState | None:
        """Most recent run started on `obj` itself or on one of its copies."""
        object_ids = [obj.content_object_id] + [c.content_object_id for c in self.objects.list_copies(obj.content_object_id)]
        stmt = (
            select(SimplificationRun)
            .where(SimplificationRun.content_object_id.in_(object_ids))
            .order_by(SimplificationRun.started_at.desc())
            .limit(1)
        )
        if target_language is not None:
            stmt = stmt.where(SimplificationRun.target_language.in_([target_language, DELETION_LOCK]))
        with session_scope(self._session_factory) as session:
            run = session.scalars(stmt).first()
        return _state_of(run) if run is not None else None

    def ignore_failed(self, fragment_id: uuid.UUID) -> None:
        """Skip a fragment in all future runs without deleting it."""
        if self.store.get_fragment(fragment_id) is None:
            raise ObjectNotFoundError(f"Unknown fragment: {fragment_id}")
        self.store.set_state(fragment_id, FragmentState.ignore)
        logger.info("fragment %s will be ignored", fragment_id)

    def reset_run(self, obj: ContentObject, target_language: str) -> int:
        """
        Clear every simplification of the object's texts in `target_language`, re-queue them,
        cancel an unfinished run and release the lock. Returns the number of texts re-queued.
        """
        copy = obj if obj.original_id is not None else self.objects.get_copy(obj.content_object_id, target_language)
        if copy is None:
            raise ObjectNotFoundError(f"Object {obj.content_object_id} has no {target_language} copy")

        links = self.store.get_links(ref_of(copy))
        for link in links:
            self.store.delete_simplification(link.fragment_id, target_language)
            self.store.set_state(link.fragment_id, FragmentState.to_simplify)

        with session_scope(self._session_factory) as session:
            running = session.scalars(
                select(SimplificationRun).where(
                    SimplificationRun.content_object_id == copy.content_object_id,
                    SimplificationRun.target_language == target_language,
                    SimplificationRun.status.in_([RunStatus.locked_running, RunStatus.not_started]),
                )
            ).all()
            for run in running:
                run.status = RunStatus.cancelled
                run.finished_at = utcnow()
        self.objects.release_lock(copy.content_object_id, target_language)
        self.reassemble_copy(copy)
        logger.info("reset %d texts of copy %s (%s)", len(links), copy.content_object_id, target_language)
        return len(links)

    # Automatic mode

    def process_automatic(self, api_name: str | None = None, limit: int | None = None) -> AutomaticResult:
        """
        Background path: simplify pending texts of copies that are neither locked nor excluded
        from automatic mode, at most `limit` texts in total.
        """
        budget = limit if limit is not None else self.items_per_tick
        result = AutomaticResult()
        for copy in self.objects.list_objects():
            if budget <= 0:
                break
            if copy.original_id is None or copy.automatic_mode_prevented or copy.target_language is None:
                continue
            api = self.apis.get(api_name or copy.api_name or self.default_api)
            if not api.is_configured():
                logger.debug("skipping copy %s: %s is not configured", copy.content_object_id, api.title)
                continue
            if self.objects.is_locked(copy.content_object_id, copy.target_language):
                continue
            pending = self._pending(copy, limit=budget)
            if not pending:
                continue

            try:
                self.objects.acquire_lock(copy.content_object_id, copy.target_language)
            except AlreadyLockedError:
                continue
            try:
                for fragment in pending:
                    failure = self._simplify_one(api, fragment, copy.target_language, user_id=0)
                    result.processed += 1
                    budget -= 1
                    if failure is None:
                        result.succeeded += 1
                    else:
                        result.failures.append(failure)
                self.reassemble_copy(copy)
                result.copies.append(copy.content_object_id)
            finally:
                self.objects.release_lock(copy.content_object_id, copy.target_language)
        logger.info(
            "automatic mode processed %d texts (%d simplified) in %d copies",
            result.processed,
            result.succeeded,
            len(result.copies),
        )
        return result

    # Deletion

    def start_deletion(self, original: ContentObject, max_items_per_tick: int | None = None) -> RunState:
        """Remove all simplified copies of `original`, one tick at a time."""
        if original.original_id is not None:
            original = self._original_of(original)
        copies = self.objects.list_copies(original.content_object_id)
        run_id = uuid.uuid4()
        self.objects.acquire_lock(original.content_object_id, DELETION_LOCK, run_id)
        try:
            with session_scope(self._session_factory) as session:
                session.add(
                    SimplificationRun(
                        run_id=run_id,
                        kind=RunKind.deletion,
                        content_object_id=original.content_object_id,
                        target_language=DELETION_LOCK,
                        status=RunStatus.locked_running,
                        count=0,
                        max=len(copies),
                        succeeded=0,
                        max_items_per_tick=max(1, max_items_per_tick or self.items_per_tick),
                        failures=[],
                    )
                )
        except StorageError:
            self.objects.release_lock(original.content_object_id, DELETION_LOCK)
            raise
        if not copies:
            return self._finish_deletion(run_id)
        return self.get(run_id)

    # Internals

    def _copy_for(
        self, obj: ContentObject, target_language: str, api_name: str | None, prevent_automatic: bool
    ) -> ContentObject:
        if obj.original_id is not None:
            if obj.target_language != target_language:
                raise StorageError(
                    f"Copy {obj.content_object_id} is in {obj.target_language}, not {target_language}"
                )
            return obj
        return self.objects.create_copy(
            obj,
            target_language,
            api_name=api_name or self.default_api,
            prevent_automatic=prevent_automatic,
        )

    def _sync_links(self, copy: ContentObject) -> None:
        original = self._original_of(copy)
        if self.objects.has_changed(original.content_object_id, copy.target_language):
            self.refresh_copy(copy)
        else:
            self._link_fragments(original, copy)

    def _link_fragments(self, original: ContentObject, copy: ContentObject) -> set[uuid.UUID]:
        builder = self.decomposer.builder_for(original.content or "", original.page_builder)
        linked: set[uuid.UUID] = set()
        for index, text in enumerate(self.decomposer.decompose(original)):
            fragment = self.store.add_fragment(text.text, original.source_language, text.field, text.is_html)
            self.store.link_object(fragment.fragment_id, ref_of(copy), order_index=index, page_builder=builder.name)
            linked.add(fragment.fragment_id)
        return linked

    def _original_of(self, copy: ContentObject) -> ContentObject:
        if copy.original_id is None:
            return copy
        return self.objects.get(copy.original_id)

    def _pending(self, copy: ContentObject, *, exclude=frozenset(), limit: int | None = None):
        return self.store.query_fragments(
            FragmentFilter(
                state=FragmentState.to_simplify,
                target_language=copy.target_language,
                obj=ref_of(copy),
                exclude_ids=frozenset(exclude),
                limit=limit,
            )
        )

    def _load(self, run_id: uuid.UUID) -> SimplificationRun:
        with session_scope(self._session_factory) as session:
            run = session.get(SimplificationRun, run_id)
        if run is None:
            raise ObjectNotFoundError(f"Unknown run: {run_id}")
        return run

    def _update(self, run_id: uuid.UUID, **values: Any) -> SimplificationRun:
        with session_scope(self._session_factory) as session:
            run = session.get(SimplificationRun, run_id)
            if run is None:
                raise ObjectNotFoundError(f"Unknown run: {run_id}")
            for key, value in values.items():
                setattr(run, key, value)
            session.flush()
            return run

    def _simplify_one(
        self, api: SimplificationApi, fragment, target_language: str, *, user_id: int
    ) -> FragmentFailure | None:
        self.store.set_state(fragment.fragment_id, FragmentState.processing)
        try:
            result = api.call(fragment.content, fragment.source_language, target_language, fragment.is_html)
        except Exception:
            self.store.set_state(fragment.fragment_id, FragmentState.to_simplify)
            raise
        if result is None:
            self.store.set_state(fragment.fragment_id, FragmentState.to_simplify)
            error = api.last_error
            failure = FragmentFailure(
                fragment_id=str(fragment.fragment_id),
                error_type=type(error).__name__ if error is not None else "EmptyResponse",
                message=str(error) if error is not None else "",
            )
            logger.warning(failure.to_log_message())
            return failure
        self.store.set_simplification(
            fragment.fragment_id,
            target_language,
            result.simplified_text,
            api.name,
            user_id=user_id,
            job_id=result.job_id,
        )
        return None

    def _tick_simplification(self, run: SimplificationRun) -> RunState:
        copy = self.objects.get(run.content_object_id)
        api = self.apis.get(run.api_name or self.default_api)
        failures = list(run.failures or [])
        failed_ids = {uuid.UUID(f["fragment_id"]) for f in failures}
        count, succeeded = run.count, run.succeeded

        batch_size = min(run.max_items_per_tick, max(run.max - count, 0))
        batch = self._pending(copy, exclude=failed_ids, limit=batch_size) if batch_size else []
        for fragment in batch:
            failure = self._simplify_one(api, fragment, run.target_language, user_id=run.user_id)
            count += 1
            if failure is None:
                succeeded += 1
            else:
                failures.append(failure.model_dump())
            self._update(run.run_id, count=count, succeeded=succeeded, failures=list(failures))

        if not batch and count < run.max:
            # Texts were simplified or ignored elsewhere since the run started.
            count = run.max
            self._update(run.run_id, count=count)

        if count >= run.max:
            return self._finish_simplification(run.run_id)
        return self.get(run.run_id)

    def _finish_simplification(self, run_id: uuid.UUID) -> RunState:
        run = self._load(run_id)
        copy = self.reassemble_copy(self.objects.get(run.content_object_id))
        failed = len(run.failures or [])
        if run.max == 0 or failed == 0:
            status = RunStatus.done
        elif run.succeeded == 0:
            status = RunStatus.failed
        else:
            status = RunStatus.partial
        results = self.payloads.simplification(
            copy, status=status, succeeded=run.succeeded, total=run.max, failed=failed
        )
        self._update(run_id, status=status, results=results, finished_at=utcnow())
        self.objects.release_lock(run.content_object_id, run.target_language)
        logger.info("run %s finished: %s (%d/%d simplified)", run_id, status.value, run.succeeded, run.max)
        return self.get(run_id)

    def _tick_deletion(self, run: SimplificationRun) -> RunState:
        copies = self.objects.list_copies(run.content_object_id)
        count = run.count
        for copy in copies[: run.max_items_per_tick]:
            self.objects.delete(copy.content_object_id)
            count += 1
            self._update(run.run_id, count=count, succeeded=count)
        if not copies or count >= run.max:
            return self._finish_deletion(run.run_id)
        return self.get(run.run_id)

    def _finish_deletion(self, run_id: uuid.UUID) -> RunState:
        run = self._load(run_id)
        original = self.objects.get(run.content_object_id)
        results = self.payloads.deletion(original, deleted=run.count)
        self._update(run_id, status=RunStatus.done, count=run.max, results=results, finished_at=utcnow())
        self.objects.release_lock(run.content_object_id, DELETION_LOCK)
        return self.get(run_id)

    def _fail(self, run: SimplificationRun, exc: BaseException) -> None:
        lock_language = DELETION_LOCK if run.kind == RunKind.deletion else run.target_language
        try:
            self._update(run.run_id, status=RunStatus.failed, error_log=str(exc), finished_at=utcnow())
        except StorageError:
            logger.exception("could not mark run %s as failed", run.run_id)
        try:
            self.objects.release_lock(run.content_object_id, lock_language)
        except StorageError:
            logger.exception("could not release lock of run %s", run.run_id)
