"""Login orchestration, identity merging and push events."""

from fineauth.services.events import EventHub
from fineauth.services.federation import FederationService, LoginOutcome
from fineauth.services.merge import IdentityMergeResolver, MergeResult


__all__ = [
    "EventHub",
    "FederationService",
    "IdentityMergeResolver",
    "LoginOutcome",
    "MergeResult",
]
