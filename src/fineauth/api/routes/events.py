"""WebSocket push channel for queue and status updates.

On connect the client receives the current ``esi:queue`` and ``esi:status``
events, then every later change. A client may send
``{"event": "session:request", "token": ...}`` to receive its
``session:account`` payload; the first successful request on a connection
also queues the account's data sync tasks.
"""

import asyncio
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from structlog import get_logger

from fineauth.exceptions import FineAuthError
from fineauth.services.events import QUEUE_EVENT, STATUS_EVENT
from fineauth.services.federation import FederationService


logger = get_logger(__name__)

router = APIRouter(tags=["events"])

SESSION_REQUEST = "session:request"
SESSION_ACCOUNT = "session:account"
SESSION_ERROR = "session:error"


async def _handle_message(
    websocket: WebSocket,
    service: FederationService,
    message: dict[str, Any],
    synced_accounts: set[int],
) -> None:
    if message.get("event") != SESSION_REQUEST:
        return

    try:
        account = await service.resolve_session(message.get("token"))
    except FineAuthError as e:
        await websocket.send_json(
            {"event": SESSION_ERROR, "data": {"type": str(e.error_type), "message": e.message}}
        )
        return

    view = await service.account_view(account)
    await websocket.send_json({"event": SESSION_ACCOUNT, "data": view.model_dump(mode="json")})

    if account.id is not None and account.id not in synced_accounts:
        synced_accounts.add(account.id)
        await service.queue_account_data_requests(account.display_name)


async def _forward_events(websocket: WebSocket, queue: asyncio.Queue[dict[str, Any]]) -> None:
    while True:
        await websocket.send_json(await queue.get())


@router.websocket("/ws")
async def events_socket(websocket: WebSocket) -> None:
    service: FederationService | None = getattr(websocket.app.state, "service", None)
    if service is None:
        await websocket.close(code=1013)
        return

    await websocket.accept()
    subscription = service.hub.subscribe()
    forwarder = asyncio.create_task(_forward_events(websocket, subscription))
    synced_accounts: set[int] = set()
    logger.debug("event_client_connected", subscribers=service.hub.subscriber_count)

    try:
        await websocket.send_json({"event": QUEUE_EVENT, "data": service.queue.payload()})
        await websocket.send_json(
            {"event": STATUS_EVENT, "data": service.status.model_dump(mode="json")}
        )
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict):
                await _handle_message(websocket, service, message, synced_accounts)
    except WebSocketDisconnect:
        logger.debug("event_client_disconnected")
    finally:
        forwarder.cancel()
        service.hub.unsubscribe(subscription)
