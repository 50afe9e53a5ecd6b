"""
Explorer integration: rate-limited HTTP client, paginated transaction streams,
and the record types they produce.
"""

from backend_dappstats.explorer.client import ExplorerClient, TransactionStream
from backend_dappstats.explorer.models import AddressDescriptor, ExplorerTransaction
from backend_dappstats.explorer.rate_limit import RequestLimiter

__all__ = [
    "AddressDescriptor",
    "ExplorerClient",
    "ExplorerTransaction",
    "RequestLimiter",
    "TransactionStream",
]
