"""FastAPI dependencies: the service container built once per process."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from simplify_pipeline.services import Services, build_services


@lru_cache(maxsize=1)
def _services() -> Services:
    from easylang_core.db.session import SessionLocal
    from easylang_core.settings import settings as core_settings
    from simplify_pipeline.settings import settings as pipeline_settings

    return build_services(SessionLocal, core_settings=core_settings, settings=pipeline_settings)


def get_services() -> Services:
    """Return the shared service container."""
    return _services()


def close_services() -> None:
    if _services.cache_info().currsize:
        _services().close()
        _services.cache_clear()


AppServices = Annotated[Services, Depends(get_services)]
