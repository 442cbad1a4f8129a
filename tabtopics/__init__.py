"""Group browser tabs by topic using weighted term vectors."""
from tabtopics.cluster import SweepPlan, plan_sweep
from tabtopics.manager import SessionTabManager, TabDescriptor, TabGroup, TabManager
from tabtopics.sweep import SweepSummary, run_sweep, undo_last
from tabtopics.vectorize import cosine_similarity

__all__ = [
    "SessionTabManager",
    "SweepPlan",
    "SweepSummary",
    "TabDescriptor",
    "TabGroup",
    "TabManager",
    "cosine_similarity",
    "plan_sweep",
    "run_sweep",
    "undo_last",
]
