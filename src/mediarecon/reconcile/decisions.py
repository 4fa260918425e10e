"""Read access to operator decisions at run and global scope."""

from ..core.model import GLOBAL_SCOPE, DecisionRecord
from ..core.ports import DecisionStore


class DecisionReader:
    """
    Look up decisions for one run.

    The run-scope bucket always wins over the global bucket; the two are
    never merged field by field.
    """

    def __init__(self, store: DecisionStore | None, run_scope_id: str = ""):
        self.store = store
        self.run_scope_id = run_scope_id

    def for_run(self, original_id: int) -> DecisionRecord | None:
        if self.store is None or not self.run_scope_id or self.run_scope_id == GLOBAL_SCOPE:
            return None
        return self.store.get(self.run_scope_id, original_id)

    def for_global(self, original_id: int) -> DecisionRecord | None:
        if self.store is None:
            return None
        return self.store.get(GLOBAL_SCOPE, original_id)

    def lookup(self, original_id: int) -> DecisionRecord | None:
        """Return the effective decision, run scope first."""
        return self.for_run(original_id) or self.for_global(original_id)
