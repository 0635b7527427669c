"""Marketplace components: request lifecycle, offers, negotiation, completion."""

from marketplace.services.completion import CompletionCoordinator
from marketplace.services.negotiations import (
    NegotiationEngine,
    current_terms,
    derive_participants,
)
from marketplace.services.offers import OfferManager
from marketplace.services.requests import ItemCatalog, RequestLifecycleController

__all__ = [
    "CompletionCoordinator",
    "ItemCatalog",
    "NegotiationEngine",
    "OfferManager",
    "RequestLifecycleController",
    "current_terms",
    "derive_participants",
]
