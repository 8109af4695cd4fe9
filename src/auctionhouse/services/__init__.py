from .auctions import list_auctions
from .bids import BidLedger, minimum_bid
from .lifecycle import AuctionLifecycle, due_status, status_clause
