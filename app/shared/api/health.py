from fastapi import APIRouter, Depends

from app.api.relay.routers.relay_ws import get_relay_controller
from app.domain.relay.relay_controller import RelayController
from .utils import ApiSuccess


router = APIRouter()


@router.get('/health', response_model=ApiSuccess)
async def health(controller: RelayController = Depends(get_relay_controller)):
    return ApiSuccess(results={"status": "OK", "live_sessions": controller.session_count})
