"""Core Layer — domain types, errors, filter resolution and boundary protocols.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - No IO: every function here runs without a session or a queue
"""
