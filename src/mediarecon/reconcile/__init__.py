"""Media reconciliation pipeline."""

from .engine import MediaReconciler, ReconcileReport
from .manifest import load_manifest, parse_manifest

__all__ = [
    "MediaReconciler",
    "ReconcileReport",
    "load_manifest",
    "parse_manifest",
]
