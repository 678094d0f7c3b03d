"""Sprint analytics — spillover detection, health scoring and sprint reads."""

from .detail import get_sprint_detail
from .health import compute_sprint_health, score_sprint_health
from .spillover import detect_spillovers, ensure_spillover_records, upsert_spillovers

__all__ = [
    "compute_sprint_health",
    "score_sprint_health",
    "detect_spillovers",
    "ensure_spillover_records",
    "get_sprint_detail",
    "upsert_spillovers",
]
