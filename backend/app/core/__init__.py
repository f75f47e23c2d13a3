"""Core Layer — pure domain logic: registry, codec, challenge selection, wizard guards.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - No IO: capabilities (wallet, ledger, order service) are Protocols only

Design Decisions:
    - Functional core separated from the imperative shell (services/, infrastructure/)
"""
