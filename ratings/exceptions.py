"""
Exceptions raised by the rating services.

Remote failures are the metafield client's RemoteReadError / RemoteWriteError.
"""


class RatingError(Exception):
    """Base exception for rating operations."""


class RatingValidationError(RatingError):
    """Bad or missing input; rejected before any Shopify call."""


class ShopNotAuthorized(RatingError):
    """No credential is stored for the shop; the app must be (re)installed."""

    def __init__(self, shop_domain):
        super().__init__(f"App not installed on shop {shop_domain}")
        self.shop_domain = shop_domain
