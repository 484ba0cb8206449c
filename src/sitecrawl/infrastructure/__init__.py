"""
Infrastructure Package.

Provides the politeness clock and proxy rotation shared by crawl workers.
"""

from .rate_limiter import (
    PolitenessClock,
    PolitenessConfig,
    PolitenessMetrics,
)
from .proxy_rotation import (
    ProxyPool,
    ProxyConfig,
    ProxyEntry,
    ProxyType,
    ProxyHealth,
    ProxyStats,
    parse_proxy_list,
    create_proxy_pool,
)

__all__ = [
    # Politeness
    "PolitenessClock",
    "PolitenessConfig",
    "PolitenessMetrics",
    # Proxy Rotation
    "ProxyPool",
    "ProxyConfig",
    "ProxyEntry",
    "ProxyType",
    "ProxyHealth",
    "ProxyStats",
    "parse_proxy_list",
    "create_proxy_pool",
]
