"""Pydantic Schemas — wire contracts for the order service, onboarding service and webhook.

Invariants:
    - Schemas validate at system boundary (webhook input, external service responses)
    - Domain types from core/ used for enum fields

Design Decisions:
    - Separate from models: schemas are wire contracts, models are persistence
"""
