"""
Tradeflow Core Time — Public API
==================================
Explicit clock protocol.
Doctrine: NO datetime.now() in workflow logic.
"""

from core.time.clock import (
    Clock,
    FixedClock,
    SystemClock,
    today,
)

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "today",
]
