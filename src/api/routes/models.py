"""Public model catalog."""

from __future__ import annotations

from fastapi import APIRouter

from src.api.models.schemas import ModelOut, ModelsResponse
from src.llm.catalog import MODEL_CATALOG

router = APIRouter(tags=["models"])


@router.get("/models", response_model=ModelsResponse)
async def list_models() -> ModelsResponse:
    return ModelsResponse(models=[ModelOut.from_descriptor(m) for m in MODEL_CATALOG])
