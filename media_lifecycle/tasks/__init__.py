"""Celery tasks."""

# Import all tasks to register them with Celery
from media_lifecycle.tasks.reclamation import reclaim_assets, reconcile_store  # noqa: F401

__all__ = ["reclaim_assets", "reconcile_store"]
