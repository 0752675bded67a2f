from fastapi import APIRouter, Request

from onlyif_messaging.schemas.messaging import HealthStatus


router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthStatus)
async def health(request: Request):
    ok = await request.app.state.conversation_repo.ping()
    return HealthStatus(status="ok" if ok else "degraded", storage=request.app.state.settings.storage_backend)
