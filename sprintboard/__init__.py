"""Sprint board — sprint timeline and health engine.

Spillover detection, health scoring and the interactive Gantt timeline for a
sprint-planning dashboard.
"""

from __future__ import annotations

__version__ = "0.4.0"
