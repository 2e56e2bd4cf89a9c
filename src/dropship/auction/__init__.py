from dropship.auction.fake_adapter import FakeAuctionPlatform
from dropship.auction.port import AuctionError, AuctionPlatform, Buyer, ClosedItem, ClosedSale, ItemSpec

__all__ = ["AuctionError", "AuctionPlatform", "Buyer", "ClosedItem", "ClosedSale", "FakeAuctionPlatform", "ItemSpec"]
