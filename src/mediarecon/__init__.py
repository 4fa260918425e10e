"""mediarecon - media reconciliation for exported content snapshots."""

__version__ = "0.1.0"
