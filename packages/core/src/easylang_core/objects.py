from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from easylang_core.db.enums import ObjectStatus
from easylang_core.db.models import ContentObject, ObjectLock
from easylang_core.db.transaction import session_scope
from easylang_core.errors import AlreadyLockedError, ObjectNotFoundError, StorageError
from easylang_core.store import FragmentStore, ObjectRef

logger = logging.getLogger(__name__)


def ref_of(obj: ContentObject) -> ObjectRef:
    return ObjectRef(object_id=obj.object_id, object_type=obj.object_type, blog_id=obj.blog_id)


class ObjectRepository:
    """
    Simplifiable objects (posts/terms), their simplified copies, run locks and change markers.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        store: FragmentStore,
        *,
        delete_unused_fragments: bool = False,
    ) -> None:
        self._session_factory = session_factory
        self._store = store
        self._delete_unused = delete_unused_fragments

    def save_object(
        self,
        *,
        object_id: int,
        object_type: str,
        title: str,
        content: str,
        source_language: str,
        blog_id: int = 1,
        page_builder: str | None = None,
        status: ObjectStatus = ObjectStatus.publish,
    ) -> ContentObject:
        """
        Insert or update an original object. Editing the text of an object that already has
        simplified copies marks every copy language as changed.
        """
        with session_scope(self._session_factory) as session:
            obj = session.scalars(
                select(ContentObject).where(
                    ContentObject.object_id == object_id,
                    ContentObject.object_type == object_type,
                    ContentObject.blog_id == blog_id,
                )
            ).first()
            if obj is not None and obj.original_id is not None:
                raise StorageError(
                    f"{object_type} {object_id} is the simplified copy of {obj.original_id}, not an original"
                )
            if obj is None:
                obj = ContentObject(
                    content_object_id=uuid.uuid4(),
                    object_id=object_id,
                    object_type=object_type,
                    blog_id=blog_id,
                    title=title,
                    content=content,
                    source_language=source_language,
                    page_builder=page_builder,
                    status=status,
                    simplified_in=[],
                    changed_languages=[],
                )
                session.add(obj)
            else:
                if (obj.title, obj.content) != (title, content) and obj.simplified_in:
                    obj.changed_languages = sorted(set(obj.changed_languages) | set(obj.simplified_in))
                obj.title = title
                obj.content = content
                obj.source_language = source_language
                obj.page_builder = page_builder
                obj.status = status
            session.flush()
            return obj

    def get(self, content_object_id: uuid.UUID) -> ContentObject:
        with session_scope(self._session_factory) as session:
            obj = session.get(ContentObject, content_object_id)
        if obj is None:
            raise ObjectNotFoundError(f"Unknown object: {content_object_id}")
        return obj

    def find(self, object_id: int, object_type: str, blog_id: int = 1) -> ContentObject | None:
        with session_scope(self._session_factory) as session:
            return session.scalars(
                select(ContentObject).where(
                    ContentObject.object_id == object_id,
                    ContentObject.object_type == object_type,
                    ContentObject.blog_id == blog_id,
                )
            ).first()

    def list_objects(self, *, originals_only: bool = False) -> list[ContentObject]:
        stmt = select(ContentObject).order_by(ContentObject.object_type, ContentObject.object_id)
        if originals_only:
            stmt = stmt.where(ContentObject.original_id.is_(None))
        with session_scope(self._session_factory) as session:
            return list(session.scalars(stmt).all())

    # Simplified copies

    def get_copy(self, original_id: uuid.UUID, target_language: str) -> ContentObject | None:
        with session_scope(self._session_factory) as session:
            return session.scalars(
                select(ContentObject).where(
                    ContentObject.original_id == original_id,
                    ContentObject.target_language == target_language,
                )
            ).first()

    def list_copies(self, original_id: uuid.UUID) -> list[ContentObject]:
        with session_scope(self._session_factory) as session:
            return list(
                session.scalars(
                    select(ContentObject)
                    .where(ContentObject.original_id == original_id)
                    .order_by(ContentObject.target_language)
                ).all()
            )

    def create_copy(
        self,
        original: ContentObject,
        target_language: str,
        *,
        api_name: str,
        prevent_automatic: bool = False,
        object_id: int | None = None,
    ) -> ContentObject:
        """
        Return the copy of `original` in `target_language`, creating it on first request.

        `object_id` is the id the host assigned to the copy. Without one the copy is numbered
        downward from -1, a range host ids never use.
        """
        if original.original_id is not None:
            raise StorageError(f"Object {original.content_object_id} is itself a simplified copy")
        existing = self.get_copy(original.content_object_id, target_language)
        if existing is not None:
            return existing

        try:
            with session_scope(self._session_factory) as session:
                source = session.get(ContentObject, original.content_object_id)
                if source is None:
                    raise ObjectNotFoundError(f"Unknown object: {original.content_object_id}")
                if object_id is None:
                    object_id = min(
                        session.scalar(
                            select(func.min(ContentObject.object_id)).where(
                                ContentObject.object_type == source.object_type,
                                ContentObject.blog_id == source.blog_id,
                            )
                        )
                        or 0,
                        0,
                    ) - 1
                copy = ContentObject(
                    content_object_id=uuid.uuid4(),
                    object_id=object_id,
                    object_type=source.object_type,
                    blog_id=source.blog_id,
                    title=source.title,
                    content=source.content,
                    page_builder=source.page_builder,
                    source_language=source.source_language,
                    status=ObjectStatus.draft,
                    original_id=source.content_object_id,
                    target_language=target_language,
                    api_name=api_name,
                    automatic_mode_prevented=prevent_automatic,
                    simplified_in=[],
                    changed_languages=[],
                )
                session.add(copy)
                if target_language not in source.simplified_in:
                    source.simplified_in = [*source.simplified_in, target_language]
                session.flush()
        except StorageError as exc:
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            existing = self.get_copy(original.content_object_id, target_language)
            if existing is None:
                raise
            return existing
        logger.info(
            "created %s copy %s/%s of object %s",
            target_language,
            copy.object_type,
            copy.object_id,
            original.object_id,
        )
        return copy

    def update_text(self, content_object_id: uuid.UUID, *, title: str, content: str) -> ContentObject:
        with session_scope(self._session_factory) as session:
            obj = session.get(ContentObject, content_object_id)
            if obj is None:
                raise ObjectNotFoundError(f"Unknown object: {content_object_id}")
            obj.title = title
            obj.content = content
            session.flush()
            return obj

    def set_automatic_prevented(self, content_object_id: uuid.UUID, prevented: bool) -> None:
        with session_scope(self._session_factory) as session:
            obj = session.get(ContentObject, content_object_id)
            if obj is None:
                raise ObjectNotFoundError(f"Unknown object: {content_object_id}")
            obj.automatic_mode_prevented = prevented

    # Locks

    def acquire_lock(
        self, content_object_id: uuid.UUID, target_language: str, run_id: uuid.UUID | None = None
    ) -> ObjectLock:
        """Insert the lock row; the unique constraint makes a second holder fail."""
        lock = ObjectLock(
            lock_id=uuid.uuid4(),
            content_object_id=content_object_id,
            target_language=target_language,
            run_id=run_id,
        )
        try:
            with session_scope(self._session_factory) as session:
                session.add(lock)
        except StorageError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise AlreadyLockedError(
                    f"Object {content_object_id} is already being simplified into {target_language}"
                ) from exc
            raise
        return lock

    def release_lock(self, content_object_id: uuid.UUID, target_language: str) -> bool:
        with session_scope(self._session_factory) as session:
            result = session.execute(
                delete(ObjectLock).where(
                    ObjectLock.content_object_id == content_object_id,
                    ObjectLock.target_language == target_language,
                )
            )
            return bool(result.rowcount)

    def get_lock(self, content_object_id: uuid.UUID, target_language: str) -> ObjectLock | None:
        with session_scope(self._session_factory) as session:
            return session.scalars(
                select(ObjectLock).where(
                    ObjectLock.content_object_id == content_object_id,
                    ObjectLock.target_language == target_language,
                )
            ).first()

    def is_locked(self, content_object_id: uuid.UUID, target_language: str | None = None) -> bool:
        stmt = select(func.count()).select_from(ObjectLock).where(ObjectLock.content_object_id == content_object_id)
        if target_language is not None:
            stmt = stmt.where(ObjectLock.target_language == target_language)
        with session_scope(self._session_factory) as session:
            return bool(session.scalar(stmt))

    # Change markers

    def mark_changed(self, content_object_id: uuid.UUID, language: str) -> None:
        with session_scope(self._session_factory) as session:
            obj = session.get(ContentObject, content_object_id)
            if obj is None:
                raise ObjectNotFoundError(f"Unknown object: {content_object_id}")
            if language not in obj.changed_languages:
                obj.changed_languages = [*obj.changed_languages, language]

    def has_changed(self, content_object_id: uuid.UUID, language: str) -> bool:
        return language in self.get(content_object_id).changed_languages

    def clear_changed(self, content_object_id: uuid.UUID, language: str) -> None:
        with session_scope(self._session_factory) as session:
            obj = session.get(ContentObject, content_object_id)
            if obj is None:
                raise ObjectNotFoundError(f"Unknown object: {content_object_id}")
            obj.changed_languages = [lang for lang in obj.changed_languages if lang != language]

    # Trash / delete

    def trash(self, content_object_id: uuid.UUID) -> ContentObject:
        obj = self.get(content_object_id)
        self._store.unlink_object(ref_of(obj), delete_unused=self._delete_unused)
        with session_scope(self._session_factory) as session:
            row = session.get(ContentObject, content_object_id)
            row.status = ObjectStatus.trash
            session.flush()
            return row

    def delete(self, content_object_id: uuid.UUID) -> None:
        """
        Remove an object and its fragment links. Deleting a copy removes its language from the
        original; deleting an original deletes its copies too.
        """
        obj = self.get(content_object_id)
        for copy in self.list_copies(content_object_id):
            self.delete(copy.content_object_id)
        self._store.unlink_object(ref_of(obj), delete_unused=self._delete_unused)
        with session_scope(self._session_factory) as session:
            if obj.original_id is not None and obj.target_language is not None:
                original = session.get(ContentObject, obj.original_id)
                if original is not None:
                    original.simplified_in = [
                        lang for lang in original.simplified_in if lang != obj.target_language
                    ]
                    original.changed_languages = [
                        lang for lang in original.changed_languages if lang != obj.target_language
                    ]
            session.execute(delete(ObjectLock).where(ObjectLock.content_object_id == content_object_id))
            session.execute(delete(ContentObject).where(ContentObject.content_object_id == content_object_id))
        logger.info("deleted object %s/%s", obj.object_type, obj.object_id)
