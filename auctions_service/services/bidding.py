"""Bid validation and application.

All writes to an auction's bid state go through ``BiddingEngine.place_bid``.
Callers in this process are serialized per auction by a striped lock; the
store write itself is a compare-and-swap on ``bid_count`` so writers in other
processes cannot both be accepted against the same snapshot.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from auctions_service.errors import (
    AuctionBusy, AuctionClosed, BidTooLow, NotFound, SelfBidForbidden, ValidationError,
)
from auctions_service.models import Auction, AuctionStatus, Bid, utcnow
from auctions_service.services.notifications import NotificationDispatcher, OutbidEvent
from auctions_service.services.store import Store
from auctions_service.utils.parsing import parse_decimal

log = logging.getLogger(__name__)


@dataclass
class BidOptions:
    # Stored with the bid only; proxy bidding is not executed.
    max_bid: Decimal | None = None
    auto_bid: bool = False


def minimum_next_bid(auction: Auction) -> Decimal:
    if auction.bid_count > 0:
        return Decimal(auction.current_bid) + Decimal(auction.bid_increment)
    return Decimal(auction.starting_bid)


LOCK_STRIPES = 64


class BiddingEngine:
    def __init__(self, store: Store, dispatcher: NotificationDispatcher,
                 cas_retries: int = 3, clock=utcnow, lock_stripes: int = LOCK_STRIPES):
        self.store = store
        self.dispatcher = dispatcher
        self.cas_retries = max(0, cas_retries)
        self._clock = clock
        # fixed pool, striped by auction id
        self._locks = [threading.Lock() for _ in range(max(1, lock_stripes))]

    def _lock_for(self, auction_id: int) -> threading.Lock:
        return self._locks[auction_id % len(self._locks)]

    def _check(self, auction: Auction | None, bidder_id: int, amount: Decimal, now: datetime) -> Auction:
        if auction is None:
            raise NotFound()
        if auction.status != AuctionStatus.ACTIVE or now >= auction.end_time:
            raise AuctionClosed()
        if bidder_id == auction.seller_id:
            raise SelfBidForbidden()
        minimum = minimum_next_bid(auction)
        if amount < minimum:
            raise BidTooLow(minimum)
        return auction

    def place_bid(self, auction_id: int, bidder_id: int, amount, options: BidOptions | None = None,
                  now: datetime | None = None) -> Bid:
        amount = parse_decimal(amount, "amount", minimum=Decimal("0"), strict_min=True)
        options = options or BidOptions()
        if options.max_bid is not None and options.max_bid < amount:
            raise ValidationError("maxBid must be at least the bid amount", fields=["maxBid"])

        with self._lock_for(auction_id):
            for attempt in range(self.cas_retries + 1):
                at = now or self._clock()
                auction = self._check(self.store.auctions.get(auction_id), bidder_id, amount, at)
                previous_bidder = auction.current_bidder_id
                seen_bid_count = auction.bid_count

                bid = None
                with self.store.transaction():
                    if self.store.auctions.apply_bid(auction_id, seen_bid_count, amount, bidder_id, at):
                        bid = self.store.bids.append({
                            "auction_id": auction_id,
                            "user_id": bidder_id,
                            "amount": amount,
                            "max_bid": options.max_bid if options.max_bid is not None else amount,
                            "auto_bid": bool(options.auto_bid),
                            "created_at": at,
                        })
                if bid is None:
                    log.info("bid on auction %s lost a race (attempt %d), re-reading", auction_id, attempt + 1)
                    continue

                log.info("bid accepted: auction=%s bidder=%s amount=%s", auction_id, bidder_id, amount)
                if previous_bidder is not None and previous_bidder != bidder_id:
                    self.dispatcher.dispatch(OutbidEvent(
                        previous_bidder_id=previous_bidder,
                        auction_id=auction_id,
                        new_amount=amount,
                    ))
                return bid

            # Still losing after every retry: a bid that is now too low says so,
            # one that would still be accepted is told to try again.
            at = now or self._clock()
            self._check(self.store.auctions.get(auction_id), bidder_id, amount, at)
            raise AuctionBusy("Auction is busy, please bid again")
