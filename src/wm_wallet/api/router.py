"""wm_wallet REST API — wallet snapshot, forced refresh and the tier table."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from src.wm_common.response import ApiResponse, success_response
from src.wm_wallet.application.schemas import WalletResponse, tier_table
from src.wm_wallet.application.service import WalletApplicationService

router = APIRouter(prefix="/wallet", tags=["wallet"])

_service: WalletApplicationService | None = None


def get_wallet_service() -> WalletApplicationService:
    global _service  # noqa: PLW0603
    if _service is None:
        _service = WalletApplicationService()
    return _service


async def shutdown_wallet_service() -> None:
    global _service  # noqa: PLW0603
    if _service is not None:
        await _service.close()
        _service = None


def _respond(request: Request, data: object) -> ApiResponse:
    resp = success_response(data)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/tiers")
async def list_tiers(request: Request) -> ApiResponse:
    return _respond(request, [t.model_dump() for t in tier_table()])


@router.get("/{user_id}")
async def get_wallet(
    user_id: str,
    service: Annotated[WalletApplicationService, Depends(get_wallet_service)],
    request: Request,
) -> ApiResponse:
    view = await service.get_wallet(user_id)
    return _respond(request, WalletResponse.from_view(view).model_dump(mode="json"))


@router.post("/{user_id}/refresh")
async def refresh_wallet(
    user_id: str,
    service: Annotated[WalletApplicationService, Depends(get_wallet_service)],
    request: Request,
) -> ApiResponse:
    view = await service.force_refresh(user_id)
    return _respond(request, WalletResponse.from_view(view).model_dump(mode="json"))
