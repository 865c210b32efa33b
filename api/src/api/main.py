"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.config import settings
from api.deps import close_services
from api.routes import simplifications, texts, usage
from easylang_core.errors import ObjectNotFoundError


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    yield
    close_services()


app = FastAPI(
    title="Easy Language API",
    description="Polling and administration endpoints for text simplification runs",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(simplifications.router, prefix="/api/simplifications", tags=["simplifications"])
app.include_router(texts.router, prefix="/api/texts", tags=["texts"])
app.include_router(usage.router, prefix="/api/usage", tags=["usage"])


@app.exception_handler(ObjectNotFoundError)
async def object_not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
