from dataclasses import dataclass

from auctions_service.services.bidding import BiddingEngine
from auctions_service.services.lifecycle import LifecycleSweeper, SweepScheduler
from auctions_service.services.notifications import NotificationDispatcher
from auctions_service.services.store import Store
from auctions_service.services.users import UserDirectory


@dataclass
class AuctionServices:
    """Everything the blueprint needs, built once per app in ``create_app``."""
    store: Store
    dispatcher: NotificationDispatcher
    engine: BiddingEngine
    sweeper: LifecycleSweeper
    scheduler: SweepScheduler
    users: UserDirectory
