"""Business errors raised by the auction services.

Each error carries the short ``code`` used in JSON responses and the HTTP
status the blueprint maps it to.
"""


class AuctionError(Exception):
    code = "error"
    status = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class NotFound(AuctionError):
    code = "not_found"
    status = 404
    default_message = "Auction not found"


class AuctionClosed(AuctionError):
    code = "closed"
    default_message = "This auction has ended"


class SelfBidForbidden(AuctionError):
    code = "self_bid"
    default_message = "You cannot bid on your own auction"


class BidTooLow(AuctionError):
    code = "low_bid"

    def __init__(self, minimum, message: str | None = None):
        self.minimum = minimum
        super().__init__(message or f"Bid must be at least {minimum}")

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["min"] = float(self.minimum)
        return d


class Forbidden(AuctionError):
    code = "forbidden"
    status = 403
    default_message = "You can only modify your own auctions"


class HasBids(AuctionError):
    code = "has_bids"
    default_message = "Cannot modify an auction that has bids"


class ValidationError(AuctionError):
    code = "invalid"
    default_message = "Invalid request"

    def __init__(self, message: str | None = None, fields: list[str] | None = None):
        self.fields = fields or []
        super().__init__(message)

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.fields:
            d["fields"] = self.fields
        return d


class AuctionBusy(AuctionError):
    code = "busy"
    status = 409
    default_message = "Auction is busy, please try again"


class StorageError(AuctionError):
    code = "storage_error"
    status = 503
    default_message = "Storage backend unavailable"


