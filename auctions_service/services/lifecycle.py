"""Settlement of auctions whose end time has passed."""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from auctions_service.models import AuctionStatus, utcnow
from auctions_service.services.notifications import (
    AuctionSettledEvent, AuctionUnsoldEvent, AuctionWonEvent, NotificationDispatcher,
)
from auctions_service.services.store import Store

log = logging.getLogger(__name__)


@dataclass
class SweepResult:
    sold: list[int] = field(default_factory=list)
    expired: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


class LifecycleSweeper:
    """Moves ended active auctions to sold/expired exactly once.

    The status write only succeeds while the auction is still active with
    the bid count that was read, so overlapping sweeps cannot settle the
    same auction twice. Events go out only for the write that succeeded.
    """

    def __init__(self, store: Store, dispatcher: NotificationDispatcher, clock=utcnow):
        self.store = store
        self.dispatcher = dispatcher
        self._clock = clock

    def sweep(self, now: datetime | None = None) -> SweepResult:
        now = now or self._clock()
        result = SweepResult()
        try:
            ids = [a.id for a in self.store.auctions.list_expired_unsettled(now)]
        except Exception:
            self.store.rollback()
            log.exception("sweep: listing ended auctions failed")
            return result

        for auction_id in ids:
            try:
                outcome = self._settle(auction_id, now)
            except Exception:
                self.store.rollback()
                log.exception("sweep: settling auction %s failed, retrying next cycle", auction_id)
                result.failed.append(auction_id)
                continue
            if outcome == AuctionStatus.SOLD:
                result.sold.append(auction_id)
            elif outcome == AuctionStatus.EXPIRED:
                result.expired.append(auction_id)
            else:
                result.skipped.append(auction_id)

        if ids:
            log.info("sweep done: sold=%s expired=%s skipped=%s failed=%s",
                     result.sold, result.expired, result.skipped, result.failed)
        return result

    def _settle(self, auction_id: int, now: datetime) -> AuctionStatus | None:
        # second pass covers a bid that landed between our read and write
        for _ in range(2):
            a = self.store.auctions.get(auction_id)
            if a is None or a.status != AuctionStatus.ACTIVE or a.end_time > now:
                return None
            bid_count = a.bid_count
            seller_id = a.seller_id
            winner_id = a.current_bidder_id
            final_bid = Decimal(a.current_bid)
            new_status = AuctionStatus.SOLD if bid_count > 0 else AuctionStatus.EXPIRED

            with self.store.transaction():
                moved = self.store.auctions.transition_status(auction_id, bid_count, new_status, now)
            if not moved:
                continue

            log.info("auction %s settled as %s", auction_id, new_status.value)
            if new_status == AuctionStatus.SOLD:
                if winner_id is not None:
                    self.dispatcher.dispatch(AuctionWonEvent(auction_id, winner_id, final_bid))
                else:
                    log.warning("auction %s sold with %d bids but no current bidder", auction_id, bid_count)
                self.dispatcher.dispatch(AuctionSettledEvent(auction_id, seller_id, winner_id, final_bid))
            else:
                self.dispatcher.dispatch(AuctionUnsoldEvent(auction_id, seller_id))
            return new_status
        return None


class SweepScheduler:
    """Recurring sweep on a daemon thread, owned by the application.

    Runs once after ``initial_delay`` seconds, then every ``interval``
    seconds until ``stop()``. Runs never overlap.
    """

    def __init__(self, app, sweeper: LifecycleSweeper, interval: float = 900, initial_delay: float = 10):
        self.app = app
        self.sweeper = sweeper
        self.interval = interval
        self.initial_delay = initial_delay
        self._stop = threading.Event()
        self._run_lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="auction-sweeper", daemon=True)
        self._thread.start()
        log.info("sweeper started: first run in %ss, every %ss", self.initial_delay, self.interval)

    def stop(self, timeout: float | None = 5) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> SweepResult | None:
        with self._run_lock:
            try:
                with self.app.app_context():
                    return self.sweeper.sweep()
            except Exception:  # noqa: BLE001
                log.exception("sweep run crashed")
                return None

    def _loop(self) -> None:
        if self._stop.wait(self.initial_delay):
            return
        while True:
            self.run_once()
            if self._stop.wait(self.interval):
                return
