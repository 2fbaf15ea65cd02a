"""Infrastructure Layer — database sessions, cache, queue client and logging.

Invariants:
    - Infrastructure never imports from services/ or api/
    - Process-wide singletons are created by the FastAPI lifespan, never at import
"""
