from fastapi import APIRouter

from recall.config import settings

router = APIRouter()


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "llm_backend": settings.llm_backend, "llm_model": settings.llm_model}
