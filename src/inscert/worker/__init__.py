"""inscert worker service.

Runs the daily and annual certificate expiration sweeps.

Usage:
    inscert-worker
    python -m inscert.worker
"""

from inscert.worker.main import Worker, run

__all__ = ["Worker", "run"]
