"""Run endpoints. Polling answers keep the ordered shape [count, max, running, payload]."""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from api.config import settings
from api.deps import AppServices
from easylang_core.db.models import ContentObject
from easylang_core.errors import EasyLanguageError
from simplify_pipeline.run.progress import progress_of
from simplify_pipeline.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()


class RunRequest(BaseModel):
    """Polling request of the simplification dialog."""

    object_id: int
    object_type: str = "post"
    initialization: bool = False
    target_language: str | None = None
    api: str | None = None
    max_items_per_tick: int | None = None


class ResetRequest(BaseModel):
    object_id: int
    object_type: str = "post"
    target_language: str | None = None


class ResetResponse(BaseModel):
    reset: int


class IgnoreResponse(BaseModel):
    fragment_id: UUID
    state: str


def _find(services: Services, object_id: int, object_type: str) -> ContentObject:
    obj = services.objects.find(object_id, object_type, services.core_settings.blog_id)
    if obj is None:
        raise HTTPException(status_code=404, detail=f"Unknown {object_type} {object_id}")
    return obj


@router.post("/run")
def run_simplification(body: RunRequest, services: AppServices) -> list[Any]:
    """Start a run (initialization) or process the next tick of the latest one."""
    obj = _find(services, body.object_id, body.object_type)
    language = body.target_language or settings.default_target_language
    try:
        if body.initialization:
            state = services.orchestrator.start_run(
                obj, language, body.api, settings.tick_size(body.max_items_per_tick)
            )
        else:
            state = services.orchestrator.latest_run(obj, language)
            if state is None:
                raise HTTPException(status_code=404, detail="No simplification has been started for this object")
            if state.running:
                state = services.orchestrator.tick(state.run_id)
    except EasyLanguageError as exc:
        logger.warning("simplification of %s %s failed: %s", body.object_type, body.object_id, exc)
        return services.progress.error_response(exc)
    return progress_of(state).as_polling_response()


@router.post("/delete")
def delete_simplifications(body: RunRequest, services: AppServices) -> list[Any]:
    """Deletion of all simplified copies, with the same polling contract."""
    obj = _find(services, body.object_id, body.object_type)
    try:
        if body.initialization:
            state = services.orchestrator.start_deletion(obj, settings.tick_size(body.max_items_per_tick))
        else:
            state = services.orchestrator.latest_run(obj)
            if state is None:
                raise HTTPException(status_code=404, detail="No deletion has been started for this object")
            if state.running:
                state = services.orchestrator.tick(state.run_id)
    except EasyLanguageError as exc:
        logger.warning("deletion for %s %s failed: %s", body.object_type, body.object_id, exc)
        return services.progress.error_response(exc)
    return progress_of(state).as_polling_response()


@router.post("/reset", response_model=ResetResponse)
def reset_simplification(body: ResetRequest, services: AppServices):
    obj = _find(services, body.object_id, body.object_type)
    count = services.orchestrator.reset_run(obj, body.target_language or settings.default_target_language)
    return ResetResponse(reset=count)


@router.post("/ignore/{fragment_id}", response_model=IgnoreResponse)
def ignore_fragment(fragment_id: UUID, services: AppServices):
    services.orchestrator.ignore_failed(fragment_id)
    return IgnoreResponse(fragment_id=fragment_id, state="ignore")
