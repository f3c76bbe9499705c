"""Core segmentation, timeline storage, and intermediate representation.

WHY: The core package holds the parts of the system that never touch an
external service — the IR dataclasses, the phrase segmenter, and the
timeline store. They are synchronous, bounded, and safe to call from a
render loop.

HOW: ir.py defines the data structures, segmenter.py builds phrases from
raw fragments, timeline.py stores display units for time lookup,
errors.py and cancellation.py hold the shared error taxonomy and the
cooperative cancellation flag.

RULES:
- Nothing in core awaits; suspension only happens at collaborator boundaries
- Degenerate input (empty lists, zero durations) yields empty results, never errors
- IR dataclasses are the contract — change with care
"""
