"""Authorization and read-side services."""

from familytree.services.authorization import AuthorizationGate, Capabilities
from familytree.services.query import TreeQueryService, TreeView

__all__ = ["AuthorizationGate", "Capabilities", "TreeQueryService", "TreeView"]
