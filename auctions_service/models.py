from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import Enum
from auctions_service.db import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AuctionStatus(PyEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    SOLD = "sold"
    EXPIRED = "expired"


class ItemCondition(PyEnum):
    NEW = "new"
    LIKE_NEW = "like-new"
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class Auction(db.Model):
    __tablename__ = "auctions"

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(50), nullable=False, index=True)
    image = db.Column(db.String(500))
    images = db.Column(db.JSON, default=list)
    condition = db.Column(
        Enum(ItemCondition, name="item_condition"),
        nullable=False,
        default=ItemCondition.GOOD,
    )
    shipping = db.Column(db.JSON)  # {cost, method, estimatedDelivery, restrictions}
    details = db.Column(db.JSON, default=dict)  # str -> str item specifics

    starting_bid = db.Column(db.Numeric(12, 2), nullable=False)
    current_bid = db.Column(db.Numeric(12, 2), nullable=False)
    bid_increment = db.Column(db.Numeric(12, 2), nullable=False)
    current_bidder_id = db.Column(db.Integer)
    bid_count = db.Column(db.Integer, nullable=False, default=0)

    end_time = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(
        Enum(AuctionStatus, name="auction_status"),
        nullable=False,
        default=AuctionStatus.ACTIVE,
        index=True,
    )
    view_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)
    settled_at = db.Column(db.DateTime)

    def __repr__(self):
        return f"<Auction {self.id} {self.status.value} bids={self.bid_count}>"


class Bid(db.Model):
    """One accepted bid. Rows are only ever inserted."""
    __tablename__ = "bids"

    id = db.Column(db.Integer, primary_key=True)
    auction_id = db.Column(db.Integer, db.ForeignKey("auctions.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    max_bid = db.Column(db.Numeric(12, 2))
    auto_bid = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)


class WatchlistEntry(db.Model):
    __tablename__ = "watchlists"

    user_id = db.Column(db.Integer, primary_key=True)
    auction_id = db.Column(db.Integer, db.ForeignKey("auctions.id"), primary_key=True)
    added_at = db.Column(db.DateTime, default=utcnow)
