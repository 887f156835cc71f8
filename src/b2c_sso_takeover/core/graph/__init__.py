"""
Graph Client Module

Exports:
- B2CGraphClient: Trust framework key set and policy calls
- open_graph_client: Authenticates and yields a B2CGraphClient
"""

from .client import B2CGraphClient
from .session import REQUIRED_PERMISSIONS, GraphSession, open_graph_client

__all__ = ['B2CGraphClient', 'GraphSession', 'REQUIRED_PERMISSIONS', 'open_graph_client']
