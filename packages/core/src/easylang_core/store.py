"""
Fragment Store: content-addressed persistence of original texts and their simplifications.

Fragments are keyed by (sha256(content), source_language); simplifications by
(fragment_id, target_language). Object links record where a fragment occurs.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import and_, case, delete, exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased, sessionmaker

from easylang_core.db.enums import FragmentState, ObjectStatus
from easylang_core.db.models import ContentObject, Fragment, ObjectLink, Simplification
from easylang_core.db.transaction import session_scope
from easylang_core.errors import StorageError
from easylang_core.hashing import content_hash

logger = logging.getLogger(__name__)

ORDER_TITLES_FIRST = "titles_first"
ORDER_DATE_ASC = "date_asc"
ORDER_DATE_DESC = "date_desc"


@dataclass(frozen=True)
class ObjectRef:
    object_id: int
    object_type: str
    blog_id: int = 1


@dataclass(frozen=True)
class FragmentFilter:
    state: FragmentState | None = None
    source_language: str | None = None
    # Restricts "has simplification" checks to this language.
    target_language: str | None = None
    obj: ObjectRef | None = None
    field_identifier: str | None = None
    exclude_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)
    order: str = ORDER_TITLES_FIRST
    limit: int | None = None


class FragmentStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # Fragments

    def add_fragment(
        self,
        content: str,
        source_language: str,
        field_identifier: str = "post_content",
        is_html: bool = False,
    ) -> Fragment:
        """Return the stored fragment for (content, source_language), inserting it if needed."""
        existing = self.get_fragment_by_original(content, source_language)
        if existing is not None:
            return existing

        fragment = Fragment(
            fragment_id=uuid.uuid4(),
            content=content,
            content_hash=content_hash(content),
            source_language=source_language,
            field=field_identifier,
            is_html=is_html,
            state=FragmentState.to_simplify,
        )
        try:
            with session_scope(self._session_factory) as session:
                session.add(fragment)
        except StorageError as exc:
            # A concurrent writer inserted the same key first; the unique constraint decides.
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            existing = self.get_fragment_by_original(content, source_language)
            if existing is None:
                raise
            return existing
        logger.debug("stored fragment %s (%s, %s)", fragment.fragment_id, source_language, field_identifier)
        return fragment

    def get_fragment(self, fragment_id: uuid.UUID) -> Fragment | None:
        with session_scope(self._session_factory) as session:
            return session.get(Fragment, fragment_id)

    def get_fragment_by_original(self, content: str, source_language: str) -> Fragment | None:
        with session_scope(self._session_factory) as session:
            return session.scalars(
                select(Fragment).where(
                    Fragment.content_hash == content_hash(content),
                    Fragment.source_language == source_language,
                )
            ).first()

    def get_fragment_by_simplification(self, content: str, target_language: str) -> Fragment | None:
        with session_scope(self._session_factory) as session:
            return session.scalars(
                select(Fragment)
                .join(Simplification, Simplification.fragment_id == Fragment.fragment_id)
                .where(
                    Simplification.content_hash == content_hash(content),
                    Simplification.target_language == target_language,
                )
                .order_by(Simplification.created_at)
            ).first()

    def set_state(self, fragment_id: uuid.UUID, state: FragmentState) -> None:
        with session_scope(self._session_factory) as session:
            fragment = session.get(Fragment, fragment_id)
            if fragment is None:
                raise StorageError(f"Unknown fragment: {fragment_id}")
            fragment.state = state

    def delete_fragment(self, fragment_id: uuid.UUID) -> bool:
        """Delete a fragment with its simplifications and object links."""
        with session_scope(self._session_factory) as session:
            return _delete_fragment(session, fragment_id)

    # Simplifications

    def set_simplification(
        self,
        fragment_id: uuid.UUID,
        target_language: str,
        content: str,
        api_name: str,
        user_id: int = 0,
        job_id: int | None = None,
    ) -> Simplification:
        with session_scope(self._session_factory) as session:
            fragment = session.get(Fragment, fragment_id)
            if fragment is None:
                raise StorageError(f"Unknown fragment: {fragment_id}")
            row = session.scalars(
                select(Simplification).where(
                    Simplification.fragment_id == fragment_id,
                    Simplification.target_language == target_language,
                )
            ).first()
            if row is None:
                row = Simplification(
                    simplification_id=uuid.uuid4(),
                    fragment_id=fragment_id,
                    target_language=target_language,
                )
                session.add(row)
            row.simplified_content = content
            row.content_hash = content_hash(content)
            row.api_name = api_name
            row.user_id = user_id
            row.job_id = job_id
            fragment.state = FragmentState.in_use
            session.flush()
            return row

    def get_simplification(self, fragment_id: uuid.UUID, target_language: str) -> Simplification | None:
        with session_scope(self._session_factory) as session:
            return session.scalars(
                select(Simplification).where(
                    Simplification.fragment_id == fragment_id,
                    Simplification.target_language == target_language,
                )
            ).first()

    def list_simplifications(self, fragment_id: uuid.UUID) -> list[Simplification]:
        with session_scope(self._session_factory) as session:
            return list(
                session.scalars(
                    select(Simplification)
                    .where(Simplification.fragment_id == fragment_id)
                    .order_by(Simplification.target_language)
                ).all()
            )

    def simplifications_for(
        self, fragment_ids: Iterable[uuid.UUID], target_language: str
    ) -> dict[uuid.UUID, Simplification]:
        ids = list(fragment_ids)
        if not ids:
            return {}
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(Simplification).where(
                    Simplification.fragment_id.in_(ids),
                    Simplification.target_language == target_language,
                )
            ).all()
            return {row.fragment_id: row for row in rows}

    def delete_simplification(self, fragment_id: uuid.UUID, target_language: str) -> bool:
        """Remove one result; the fragment and its object links stay."""
        with session_scope(self._session_factory) as session:
            result = session.execute(
                delete(Simplification).where(
                    Simplification.fragment_id == fragment_id,
                    Simplification.target_language == target_language,
                )
            )
            if not result.rowcount:
                return False
            remaining = session.scalar(
                select(func.count()).select_from(Simplification).where(Simplification.fragment_id == fragment_id)
            )
            fragment = session.get(Fragment, fragment_id)
            if fragment is not None and not remaining and fragment.state == FragmentState.in_use:
                fragment.state = FragmentState.to_simplify
            return True

    # Object links

    def link_object(
        self,
        fragment_id: uuid.UUID,
        obj: ObjectRef,
        *,
        order_index: int = 0,
        page_builder: str | None = None,
    ) -> ObjectLink:
        with session_scope(self._session_factory) as session:
            link = session.scalars(
                select(ObjectLink).where(
                    ObjectLink.fragment_id == fragment_id,
                    ObjectLink.object_id == obj.object_id,
                    ObjectLink.object_type == obj.object_type,
                    ObjectLink.blog_id == obj.blog_id,
                )
            ).first()
            if link is None:
                link = ObjectLink(
                    link_id=uuid.uuid4(),
                    fragment_id=fragment_id,
                    object_id=obj.object_id,
                    object_type=obj.object_type,
                    blog_id=obj.blog_id,
                )
                session.add(link)
            link.order_index = order_index
            link.page_builder = page_builder
            session.flush()
            return link

    def get_objects(self, fragment_id: uuid.UUID) -> list[ObjectLink]:
        with session_scope(self._session_factory) as session:
            return list(
                session.scalars(
                    select(ObjectLink).where(ObjectLink.fragment_id == fragment_id).order_by(ObjectLink.created_at)
                ).all()
            )

    def get_links(self, obj: ObjectRef) -> list[ObjectLink]:
        with session_scope(self._session_factory) as session:
            return list(
                session.scalars(
                    select(ObjectLink).where(*_link_matches(obj)).order_by(ObjectLink.order_index)
                ).all()
            )

    def unlink(self, fragment_id: uuid.UUID, obj: ObjectRef, *, delete_unused: bool = False) -> bool:
        with session_scope(self._session_factory) as session:
            result = session.execute(
                delete(ObjectLink).where(ObjectLink.fragment_id == fragment_id, *_link_matches(obj))
            )
            if delete_unused:
                _delete_if_orphaned(session, fragment_id)
            return bool(result.rowcount)

    def unlink_object(self, obj: ObjectRef, *, delete_unused: bool = False) -> int:
        """Drop every link of one object; returns the number of fragments it referenced."""
        with session_scope(self._session_factory) as session:
            fragment_ids = list(session.scalars(select(ObjectLink.fragment_id).where(*_link_matches(obj))).all())
            session.execute(delete(ObjectLink).where(*_link_matches(obj)))
            if delete_unused:
                for fragment_id in fragment_ids:
                    _delete_if_orphaned(session, fragment_id)
            return len(fragment_ids)

    # Queries

    def query_fragments(self, flt: FragmentFilter | None = None) -> list[Fragment]:
        flt = flt or FragmentFilter()
        stmt = select(Fragment)

        if flt.obj is not None:
            stmt = stmt.join(
                ObjectLink,
                and_(ObjectLink.fragment_id == Fragment.fragment_id, *_link_matches(flt.obj)),
            )

        # Aliased so the subqueries never correlate against the object join above.
        other_link = aliased(ObjectLink)
        has_link = exists().where(other_link.fragment_id == Fragment.fragment_id)
        simplification_conditions = [Simplification.fragment_id == Fragment.fragment_id]
        if flt.target_language is not None:
            simplification_conditions.append(Simplification.target_language == flt.target_language)
        has_simplification = exists().where(*simplification_conditions)
        in_trash = exists().where(
            other_link.fragment_id == Fragment.fragment_id,
            ContentObject.object_id == other_link.object_id,
            ContentObject.object_type == other_link.object_type,
            ContentObject.blog_id == other_link.blog_id,
            ContentObject.status == ObjectStatus.trash,
        )

        if flt.state == FragmentState.in_use:
            stmt = stmt.where(has_link, has_simplification)
        elif flt.state == FragmentState.to_simplify:
            stmt = stmt.where(has_link, ~has_simplification, ~in_trash, Fragment.state != FragmentState.ignore)
        elif flt.state is not None:
            stmt = stmt.where(Fragment.state == flt.state)

        if flt.source_language is not None:
            stmt = stmt.where(Fragment.source_language == flt.source_language)
        if flt.field_identifier is not None:
            stmt = stmt.where(Fragment.field == flt.field_identifier)
        if flt.exclude_ids:
            stmt = stmt.where(Fragment.fragment_id.not_in(list(flt.exclude_ids)))

        if flt.order == ORDER_DATE_ASC:
            stmt = stmt.order_by(Fragment.created_at.asc())
        elif flt.order == ORDER_DATE_DESC:
            stmt = stmt.order_by(Fragment.created_at.desc())
        else:
            titles_first = case((Fragment.field == "title", 0), else_=1)
            if flt.obj is not None:
                stmt = stmt.order_by(titles_first, ObjectLink.order_index)
            else:
                stmt = stmt.order_by(titles_first, Fragment.created_at)

        if flt.limit is not None:
            stmt = stmt.limit(flt.limit)

        with session_scope(self._session_factory) as session:
            return list(session.scalars(stmt).all())

    def count_fragments(self, flt: FragmentFilter | None = None) -> int:
        return len(self.query_fragments(flt))


def _link_matches(obj: ObjectRef) -> list:
    return [
        ObjectLink.object_id == obj.object_id,
        ObjectLink.object_type == obj.object_type,
        ObjectLink.blog_id == obj.blog_id,
    ]


def _delete_fragment(session: Session, fragment_id: uuid.UUID) -> bool:
    session.execute(delete(Simplification).where(Simplification.fragment_id == fragment_id))
    session.execute(delete(ObjectLink).where(ObjectLink.fragment_id == fragment_id))
    result = session.execute(delete(Fragment).where(Fragment.fragment_id == fragment_id))
    return bool(result.rowcount)


def _delete_if_orphaned(session: Session, fragment_id: uuid.UUID) -> None:
    remaining = session.scalar(
        select(func.count()).select_from(ObjectLink).where(ObjectLink.fragment_id == fragment_id)
    )
    if not remaining:
        logger.info("deleting unused fragment %s", fragment_id)
        _delete_fragment(session, fragment_id)
