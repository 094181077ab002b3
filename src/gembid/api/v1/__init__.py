"""API v1 routers."""

from gembid.api.v1 import auctions, bidders, bids, watchers, ws

__all__ = ["auctions", "bidders", "bids", "watchers", "ws"]
