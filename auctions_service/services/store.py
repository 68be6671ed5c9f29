"""Data access for auctions, bids and watchlists.

The engine and sweeper only talk to the abstract ``AuctionRepository``,
``BidLedger`` and ``WatchlistRepository`` interfaces bundled in a ``Store``.
``SqlStore`` is the Flask-SQLAlchemy backed implementation.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from functools import wraps

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from auctions_service.errors import StorageError
from auctions_service.models import Auction, AuctionStatus, Bid, WatchlistEntry


class AuctionRepository(ABC):
    @abstractmethod
    def get(self, auction_id: int) -> Auction | None: ...

    @abstractmethod
    def create(self, data: dict) -> Auction: ...

    @abstractmethod
    def update(self, auction_id: int, partial: dict,
               expected_bid_count: int | None = None,
               expected_status: AuctionStatus | None = None) -> Auction | None:
        """Apply ``partial``.

        With ``expected_bid_count`` or ``expected_status`` the write only lands
        while the stored row still matches them.
        """

    @abstractmethod
    def delete(self, auction_id: int, expected_bid_count: int | None = None,
               expected_status: AuctionStatus | None = None) -> bool: ...

    @abstractmethod
    def list_active(self, now: datetime) -> list[Auction]: ...

    @abstractmethod
    def list_featured(self, now: datetime, limit: int) -> list[Auction]: ...

    @abstractmethod
    def list_by_seller(self, seller_id: int) -> list[Auction]: ...

    @abstractmethod
    def list_expired_unsettled(self, now: datetime) -> list[Auction]: ...

    @abstractmethod
    def increment_views(self, auction_id: int) -> Auction | None: ...

    @abstractmethod
    def apply_bid(self, auction_id: int, expected_bid_count: int, amount,
                  bidder_id: int, now: datetime) -> bool:
        """Compare-and-swap the bid state.

        Succeeds only while the auction still has ``expected_bid_count`` bids,
        is active and has not reached its end time.
        """

    @abstractmethod
    def transition_status(self, auction_id: int, expected_bid_count: int,
                          new_status: AuctionStatus, now: datetime) -> bool:
        """Move an active auction to ``new_status``; False if it is no longer active."""


class BidLedger(ABC):
    @abstractmethod
    def append(self, data: dict) -> Bid: ...

    @abstractmethod
    def list_by_auction(self, auction_id: int) -> list[Bid]: ...

    @abstractmethod
    def list_by_user(self, user_id: int) -> list[Bid]: ...


class WatchlistRepository(ABC):
    @abstractmethod
    def add(self, user_id: int, auction_id: int) -> WatchlistEntry: ...

    @abstractmethod
    def remove(self, user_id: int, auction_id: int) -> bool: ...

    @abstractmethod
    def contains(self, user_id: int, auction_id: int) -> bool: ...

    @abstractmethod
    def list_auctions(self, user_id: int) -> list[Auction]: ...


class Store(ABC):
    auctions: AuctionRepository
    bids: BidLedger
    watchlist: WatchlistRepository

    @abstractmethod
    def transaction(self):
        """Context manager: commit on success, roll back on any error."""

    @abstractmethod
    def rollback(self) -> None: ...


def _storage_errors(func):
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except SQLAlchemyError as e:
            self._db.session.rollback()
            raise StorageError(f"{func.__name__} failed: {e.__class__.__name__}") from e
    return wrapper


def _guard(auction_id, expected_bid_count, expected_status):
    cond = [Auction.id == auction_id]
    if expected_bid_count is not None:
        cond.append(Auction.bid_count == expected_bid_count)
    if expected_status is not None:
        cond.append(Auction.status == expected_status)
    return cond


class SqlAuctionRepository(AuctionRepository):
    def __init__(self, db):
        self._db = db

    @_storage_errors
    def get(self, auction_id):
        return self._db.session.get(Auction, auction_id, populate_existing=True)

    @_storage_errors
    def create(self, data):
        a = Auction(**data)
        self._db.session.add(a)
        self._db.session.flush()
        return a

    @_storage_errors
    def update(self, auction_id, partial, expected_bid_count=None, expected_status=None):
        if expected_bid_count is None and expected_status is None:
            a = self._db.session.get(Auction, auction_id)
            if not a:
                return None
            for key, value in partial.items():
                setattr(a, key, value)
            self._db.session.flush()
            return a
        res = self._db.session.execute(
            update(Auction)
            .where(*_guard(auction_id, expected_bid_count, expected_status))
            .values(**partial)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            return None
        return self._db.session.get(Auction, auction_id, populate_existing=True)

    @_storage_errors
    def delete(self, auction_id, expected_bid_count=None, expected_status=None):
        cond = _guard(auction_id, expected_bid_count, expected_status)
        if not self._db.session.execute(select(Auction.id).where(*cond)).first():
            return False
        self._db.session.execute(
            delete(WatchlistEntry)
            .where(WatchlistEntry.auction_id == auction_id)
            .execution_options(synchronize_session=False)
        )
        res = self._db.session.execute(
            delete(Auction).where(*cond).execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    @_storage_errors
    def list_active(self, now):
        return (
            Auction.query
            .filter(Auction.status == AuctionStatus.ACTIVE, Auction.end_time > now)
            .order_by(Auction.end_time.asc())
            .all()
        )

    @_storage_errors
    def list_featured(self, now, limit):
        return (
            Auction.query
            .filter(Auction.status == AuctionStatus.ACTIVE, Auction.end_time > now)
            .order_by(Auction.bid_count.desc(), Auction.end_time.asc())
            .limit(limit)
            .all()
        )

    @_storage_errors
    def list_by_seller(self, seller_id):
        return (
            Auction.query
            .filter_by(seller_id=seller_id)
            .order_by(Auction.created_at.desc(), Auction.id.desc())
            .all()
        )

    @_storage_errors
    def list_expired_unsettled(self, now):
        return (
            Auction.query
            .filter(Auction.status == AuctionStatus.ACTIVE, Auction.end_time <= now)
            .order_by(Auction.end_time.asc())
            .all()
        )

    @_storage_errors
    def increment_views(self, auction_id):
        res = self._db.session.execute(
            update(Auction)
            .where(Auction.id == auction_id)
            .values(view_count=Auction.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            return None
        return self._db.session.get(Auction, auction_id, populate_existing=True)

    @_storage_errors
    def apply_bid(self, auction_id, expected_bid_count, amount, bidder_id, now):
        res = self._db.session.execute(
            update(Auction)
            .where(
                Auction.id == auction_id,
                Auction.bid_count == expected_bid_count,
                Auction.status == AuctionStatus.ACTIVE,
                Auction.end_time > now,
            )
            .values(
                current_bid=amount,
                current_bidder_id=bidder_id,
                bid_count=Auction.bid_count + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    @_storage_errors
    def transition_status(self, auction_id, expected_bid_count, new_status, now):
        res = self._db.session.execute(
            update(Auction)
            .where(
                Auction.id == auction_id,
                Auction.status == AuctionStatus.ACTIVE,
                Auction.bid_count == expected_bid_count,
            )
            .values(status=new_status, settled_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1


class SqlBidLedger(BidLedger):
    def __init__(self, db):
        self._db = db

    @_storage_errors
    def append(self, data):
        b = Bid(**data)
        self._db.session.add(b)
        self._db.session.flush()
        return b

    @_storage_errors
    def list_by_auction(self, auction_id):
        return (
            Bid.query
            .filter_by(auction_id=auction_id)
            .order_by(Bid.amount.desc(), Bid.created_at.asc(), Bid.id.asc())
            .all()
        )

    @_storage_errors
    def list_by_user(self, user_id):
        return (
            Bid.query
            .filter_by(user_id=user_id)
            .order_by(Bid.created_at.desc(), Bid.id.desc())
            .all()
        )


class SqlWatchlistRepository(WatchlistRepository):
    def __init__(self, db):
        self._db = db

    @_storage_errors
    def add(self, user_id, auction_id):
        entry = self._db.session.get(WatchlistEntry, (user_id, auction_id))
        if entry is None:
            entry = WatchlistEntry(user_id=user_id, auction_id=auction_id)
            self._db.session.add(entry)
            self._db.session.flush()
        return entry

    @_storage_errors
    def remove(self, user_id, auction_id):
        entry = self._db.session.get(WatchlistEntry, (user_id, auction_id))
        if entry is None:
            return False
        self._db.session.delete(entry)
        self._db.session.flush()
        return True

    @_storage_errors
    def contains(self, user_id, auction_id):
        return self._db.session.get(WatchlistEntry, (user_id, auction_id)) is not None

    @_storage_errors
    def list_auctions(self, user_id):
        return (
            Auction.query
            .join(WatchlistEntry, WatchlistEntry.auction_id == Auction.id)
            .filter(WatchlistEntry.user_id == user_id)
            .order_by(WatchlistEntry.added_at.desc())
            .all()
        )


class SqlStore(Store):
    def __init__(self, db):
        self._db = db
        self.auctions = SqlAuctionRepository(db)
        self.bids = SqlBidLedger(db)
        self.watchlist = SqlWatchlistRepository(db)

    @contextmanager
    def transaction(self):
        try:
            yield self
            self._db.session.commit()
        except SQLAlchemyError as e:
            self._db.session.rollback()
            raise StorageError(f"commit failed: {e.__class__.__name__}") from e
        except Exception:
            self._db.session.rollback()
            raise

    def rollback(self):
        self._db.session.rollback()
