"""TaskHub Application Package — task records mirrored onto a processing queue.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
