"""Bid and settlement events, and their hand-off to the notifications service."""
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, asdict
from decimal import Decimal

import requests

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutbidEvent:
    previous_bidder_id: int
    auction_id: int
    new_amount: Decimal


@dataclass(frozen=True)
class AuctionWonEvent:
    auction_id: int
    winner_id: int
    final_bid: Decimal


@dataclass(frozen=True)
class AuctionSettledEvent:
    auction_id: int
    seller_id: int
    winner_id: int
    final_bid: Decimal


@dataclass(frozen=True)
class AuctionUnsoldEvent:
    auction_id: int
    seller_id: int


class Notifier(ABC):
    @abstractmethod
    def send_outbid(self, user_id: int, auction_id: int, new_amount: Decimal) -> None: ...

    @abstractmethod
    def send_auction_won(self, user_id: int, auction_id: int, final_bid: Decimal) -> None: ...

    @abstractmethod
    def send_auction_ended(self, seller_id: int, auction_id: int, has_bids: bool,
                           final_bid: Decimal | None = None, winner_id: int | None = None) -> None: ...


class HttpNotifier(Notifier):
    """Posts JSON to the notifications service, which resolves recipients and sends email."""

    def __init__(self, base_url: str, timeout: float = 5):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post(self, kind: str, payload: dict) -> None:
        resp = requests.post(f"{self.base_url}/notifications/{kind}", json=payload, timeout=self.timeout)
        resp.raise_for_status()

    def send_outbid(self, user_id, auction_id, new_amount):
        self._post("outbid", {
            "user_id": user_id,
            "auction_id": auction_id,
            "current_bid": float(new_amount),
        })

    def send_auction_won(self, user_id, auction_id, final_bid):
        self._post("auction-won", {
            "user_id": user_id,
            "auction_id": auction_id,
            "final_bid": float(final_bid),
        })

    def send_auction_ended(self, seller_id, auction_id, has_bids, final_bid=None, winner_id=None):
        self._post("auction-ended", {
            "user_id": seller_id,
            "auction_id": auction_id,
            "has_bids": has_bids,
            "final_bid": float(final_bid) if final_bid is not None else None,
            "winner_id": winner_id,
        })


class LogNotifier(Notifier):
    """Used when no notifications service is configured."""

    def send_outbid(self, user_id, auction_id, new_amount):
        log.info("outbid: user=%s auction=%s current_bid=%s", user_id, auction_id, new_amount)

    def send_auction_won(self, user_id, auction_id, final_bid):
        log.info("auction won: user=%s auction=%s final_bid=%s", user_id, auction_id, final_bid)

    def send_auction_ended(self, seller_id, auction_id, has_bids, final_bid=None, winner_id=None):
        log.info("auction ended: seller=%s auction=%s has_bids=%s final_bid=%s winner=%s",
                 seller_id, auction_id, has_bids, final_bid, winner_id)


class NotificationDispatcher:
    """Fire-and-forget delivery of events to a Notifier.

    With ``async_mode`` the call happens on a worker thread and ``dispatch``
    returns right after hand-off. Delivery errors are retried ``retries``
    times, then logged; they never reach the caller.
    """

    def __init__(self, notifier: Notifier, async_mode: bool = True, workers: int = 4, retries: int = 2):
        self.notifier = notifier
        self.retries = max(0, retries)
        self._executor = (
            ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify")
            if async_mode else None
        )

    def dispatch(self, event) -> None:
        if self._executor is None:
            self._deliver(event)
            return
        try:
            self._executor.submit(self._deliver, event)
        except RuntimeError:
            # executor already shut down
            log.error("notification dropped, dispatcher closed: %r", event)

    def _deliver(self, event) -> bool:
        for attempt in range(self.retries + 1):
            try:
                self._send(event)
                return True
            except Exception:  # noqa: BLE001
                if attempt < self.retries:
                    log.warning("notification attempt %d failed for %r, retrying", attempt + 1, event)
                    continue
                log.exception("notification failed for %s %s", type(event).__name__, asdict(event))
        return False

    def _send(self, event) -> None:
        if isinstance(event, OutbidEvent):
            self.notifier.send_outbid(event.previous_bidder_id, event.auction_id, event.new_amount)
        elif isinstance(event, AuctionWonEvent):
            self.notifier.send_auction_won(event.winner_id, event.auction_id, event.final_bid)
        elif isinstance(event, AuctionSettledEvent):
            self.notifier.send_auction_ended(
                event.seller_id, event.auction_id, True,
                final_bid=event.final_bid, winner_id=event.winner_id,
            )
        elif isinstance(event, AuctionUnsoldEvent):
            self.notifier.send_auction_ended(event.seller_id, event.auction_id, False)
        else:
            raise TypeError(f"unknown event {event!r}")

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
