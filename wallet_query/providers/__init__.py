"""
Upstream providers: the rate-limited block explorer and the node JSON-RPC.
"""

from wallet_query.providers.base import BaseHttpProvider
from wallet_query.providers.explorer import ExplorerClient
from wallet_query.providers.node import ERC20_ABI, NodeProviderClient


__all__ = [
    "BaseHttpProvider",
    "ExplorerClient",
    "NodeProviderClient",
    "ERC20_ABI",
]
