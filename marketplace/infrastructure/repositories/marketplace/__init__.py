from .catalog_repository import CatalogRepository
from .notification_repository import NotificationRepository
from .order_repository import OrderRepository
from .party_repository import PartyRepository
from .proposal_repository import ProposalRepository
from .quote_repository import QuoteRepository

__all__ = [
    "CatalogRepository",
    "NotificationRepository",
    "OrderRepository",
    "PartyRepository",
    "ProposalRepository",
    "QuoteRepository",
]
