"""Session and character routes for signed-in accounts."""

from fastapi import APIRouter

from fineauth.api.dependencies import CurrentAccountDep, ServiceDep
from fineauth.services.schemas import (
    AccountsResponse,
    CharactersResponse,
    CharacterView,
    SessionResponse,
)


router = APIRouter(tags=["session"])


@router.get("/session", response_model=SessionResponse)
async def get_session_account(
    account: CurrentAccountDep, service: ServiceDep
) -> SessionResponse:
    """Return the signed-in account with its characters."""
    return SessionResponse(account=await service.account_view(account))


@router.post("/characters/refresh", response_model=CharactersResponse)
async def refresh_characters(
    account: CurrentAccountDep, service: ServiceDep
) -> CharactersResponse:
    """Re-fetch corporation and alliance data for the account's characters."""
    characters = await service.refresh_characters(account)
    return CharactersResponse(
        characters=[CharacterView.from_model(c) for c in characters]
    )


@router.get("/admin/accounts", response_model=AccountsResponse)
async def list_accounts(
    account: CurrentAccountDep, service: ServiceDep
) -> AccountsResponse:
    """List every account, newest first. Admin only."""
    return AccountsResponse(accounts=await service.list_accounts(account))
