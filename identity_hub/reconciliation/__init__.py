"""Keeps a service's alias fields consistent on every write."""

from identity_hub.reconciliation.reconciler import apply_patch, reconcile

__all__ = ["apply_patch", "reconcile"]
