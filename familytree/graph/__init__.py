"""Graph rules and whole-tree synchronisation.

Public re-exports so callers can write::

    from familytree.graph import TreeReconciler, validate_relation
"""

from familytree.graph.diff import SyncPlan, plan_sync
from familytree.graph.reconciler import TreeReconciler
from familytree.graph.validator import (
    GraphSnapshot,
    Invalid,
    Valid,
    ValidationResult,
    validate_graph,
    validate_relation,
)

__all__ = [
    "GraphSnapshot",
    "Invalid",
    "SyncPlan",
    "TreeReconciler",
    "Valid",
    "ValidationResult",
    "plan_sync",
    "validate_graph",
    "validate_relation",
]
