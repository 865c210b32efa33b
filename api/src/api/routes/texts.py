"""Text (fragment) endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Response
from pydantic import BaseModel

from api.deps import AppServices
from easylang_core.db.enums import FragmentState
from easylang_core.store import ORDER_TITLES_FIRST, FragmentFilter

router = APIRouter()


class TextItem(BaseModel):
    """One original text with its simplification in the requested language."""

    fragment_id: UUID
    content: str
    source_language: str
    field: str
    is_html: bool
    state: FragmentState
    created_at: datetime
    simplification: str | None = None
    object_count: int = 0

    model_config = {"from_attributes": True}


class TextListResponse(BaseModel):
    total: int
    texts: list[TextItem]


@router.get("", response_model=TextListResponse)
def list_texts(
    services: AppServices,
    state: FragmentState | None = None,
    source_language: str | None = None,
    target_language: str | None = None,
    field: str | None = None,
    order: str = ORDER_TITLES_FIRST,
    limit: int = Query(50, ge=1, le=500),
):
    """List texts; `in_use` and `to_simplify` are relative to `target_language` when given."""
    fragments = services.store.query_fragments(
        FragmentFilter(
            state=state,
            source_language=source_language,
            target_language=target_language,
            field_identifier=field,
            order=order,
            limit=limit,
        )
    )
    simplified = (
        services.store.simplifications_for([f.fragment_id for f in fragments], target_language)
        if target_language
        else {}
    )
    items = []
    for fragment in fragments:
        item = TextItem.model_validate(fragment)
        row = simplified.get(fragment.fragment_id)
        item.simplification = row.simplified_content if row is not None else None
        item.object_count = len(services.store.get_objects(fragment.fragment_id))
        items.append(item)
    return TextListResponse(total=len(items), texts=items)


@router.delete("/{fragment_id}", status_code=204)
def delete_text(fragment_id: UUID, services: AppServices):
    if not services.store.delete_fragment(fragment_id):
        raise HTTPException(status_code=404, detail="Text not found")
    return Response(status_code=204)


@router.delete("/{fragment_id}/simplifications/{language}", status_code=204)
def delete_simplification(fragment_id: UUID, language: str, services: AppServices):
    if not services.store.delete_simplification(fragment_id, language):
        raise HTTPException(status_code=404, detail="Simplification not found")
    return Response(status_code=204)
