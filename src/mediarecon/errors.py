"""
Exception hierarchy for media reconciliation.

Per-item failures (transport, integrity, materialization) are raised by
adapters and stages, then caught and counted by the stage loops. Structural
failures (configuration, manifest) propagate to the caller.
"""


class ReconcileError(Exception):
    """Base exception for media reconciliation."""
    pass


class ConfigError(ReconcileError):
    """Configuration value is invalid."""
    pass


class ManifestError(ReconcileError):
    """Manifest cannot be read or decoded; fatal to the run."""
    pass


# ============================================================================
# PER-ITEM ERRORS - counted in run statistics, never stop the queue
# ============================================================================

class TransportError(ReconcileError):
    """A bundled file is missing or a remote fetch failed."""
    pass


class IntegrityError(ReconcileError):
    """Computed content hash does not match the expected hash."""

    def __init__(self, message: str, expected: str = "", actual: str = ""):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class MaterializeError(ReconcileError):
    """A local asset record could not be created."""
    pass
