from .cryptocompare import CandleProviderError, CryptoCompareClient
from .twilio import TwilioNotifier

__all__ = [
    "CandleProviderError",
    "CryptoCompareClient",
    "TwilioNotifier",
]
