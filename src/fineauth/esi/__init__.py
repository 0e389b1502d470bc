"""EVE SSO / ESI client, response cache, task queue and status poller."""

from fineauth.esi.cache import CacheEntry, ExternalCallCache
from fineauth.esi.client import ESIClient
from fineauth.esi.models import EsiStatus, TokenResponse, VerifiedIdentity
from fineauth.esi.queue import QueueTask, TaskQueue
from fineauth.esi.status import StatusPoller


__all__ = [
    "CacheEntry",
    "ESIClient",
    "EsiStatus",
    "ExternalCallCache",
    "QueueTask",
    "StatusPoller",
    "TaskQueue",
    "TokenResponse",
    "VerifiedIdentity",
]
