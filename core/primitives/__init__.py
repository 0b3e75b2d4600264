"""
Tradeflow Core Primitives — Reusable Business Building Blocks
==============================================================
Primitives are the shared, engine-agnostic building blocks that the
inventory and sales engines consume. They are:

- Pure Python (no Django dependency)
- Immutable (frozen dataclasses)
- Deterministic (same input → same output)

Primitives:
    pricing   — Line totals, discounts, tax and grand totals
    workflow  — State machine definitions and transition checks
    actor     — Who performed an action
"""
