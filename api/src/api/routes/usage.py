"""Quota endpoints."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from api.deps import AppServices
from easylang_core.db.enums import QuotaStatus

router = APIRouter()


class UsageResponse(BaseModel):
    api_name: str
    spent: int
    limit: int | None
    rest: int | None
    percent: float


class QuotaCheckResponse(BaseModel):
    api_name: str
    status: QuotaStatus
    chars_count: int
    quota_percent: float
    quota_rest: int | None


def _require_api(services, api_name: str) -> None:
    if api_name not in services.apis:
        raise HTTPException(status_code=404, detail=f"Unknown API: {api_name}")


@router.get("/{api_name}", response_model=UsageResponse)
def get_usage(api_name: str, services: AppServices):
    _require_api(services, api_name)
    usage = services.quota.get_usage(api_name)
    return UsageResponse(
        api_name=api_name,
        spent=usage.spent,
        limit=usage.limit,
        rest=usage.rest,
        percent=usage.percent,
    )


@router.get("/{api_name}/check", response_model=QuotaCheckResponse)
def check_object(api_name: str, object_id: int, services: AppServices, object_type: str = "post"):
    """Quota status for simplifying all texts of one object with this API."""
    _require_api(services, api_name)
    obj = services.objects.find(object_id, object_type, services.core_settings.blog_id)
    if obj is None:
        raise HTTPException(status_code=404, detail=f"Unknown {object_type} {object_id}")
    texts = [t.text for t in services.decomposer.decompose(obj)]
    check = services.quota.check_object(api_name, texts)
    return QuotaCheckResponse(
        api_name=api_name,
        status=check.status,
        chars_count=check.chars_count,
        quota_percent=check.quota_percent,
        quota_rest=check.quota_rest,
    )
