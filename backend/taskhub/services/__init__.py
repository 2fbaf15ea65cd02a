"""Services Layer — task mutation coordinator, query builder, outbox and queue consumer.

Invariants:
    - Services own transactions; routes never commit
    - Queue publication happens only after the originating commit
"""
