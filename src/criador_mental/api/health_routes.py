from fastapi import APIRouter
from ..config import settings

router = APIRouter(tags=["health"])

@router.get("/health")
def health():
    return {
        "status": "ok",
        "storage": "database" if settings.database_url else "memory",
        "image_model": settings.image_model,
    }
