"""FastAPI dependencies for the service and the bearer session."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette import status

from fineauth.db.models import Account
from fineauth.services.federation import FederationService


bearer_scheme = HTTPBearer(auto_error=False)


def get_service(request: Request) -> FederationService:
    service: FederationService | None = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return service


ServiceDep = Annotated[FederationService, Depends(get_service)]


async def get_current_account(
    service: ServiceDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Account:
    """Resolve the bearer session; 401 when missing or unknown."""
    token = credentials.credentials if credentials else None
    return await service.resolve_session(token)


CurrentAccountDep = Annotated[Account, Depends(get_current_account)]
