"""Token lifecycle management.

Usage:
    from spark_auth.auth import TokenManager

    manager = TokenManager(config, store, service)
    token = await manager.get_guest_token()
"""

from .manager import TokenManager

__all__ = [
    "TokenManager",
]
