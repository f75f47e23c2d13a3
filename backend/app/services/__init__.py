"""Services Layer — wallet session, trustline guard, claim orchestrator, onboarding wizard.

Invariants:
    - Services depend on core/ Protocols, never on concrete clients
    - Concrete wiring lives in factory.py only
"""
