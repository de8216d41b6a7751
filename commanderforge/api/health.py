"""
Health check endpoint.

Liveness only; the service holds no database or other stateful dependency.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from commanderforge.config import settings

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    llm_enabled: bool


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """
    Liveness probe.

    Returns healthy if the service is running. Reports whether an
    Anthropic key is configured but never calls the API.
    """
    return HealthResponse(status="healthy", llm_enabled=bool(settings.anthropic_api_key))
