"""Claxis - decision core for salon conversation automation.

Modules:
    - signals: Lexical conversation signals (complexity, urgency, sentiment)
    - routing: Model router with direct business rules and weighted scoring
    - timing: Service-window response timing optimizer
    - usage: Usage event store and per-model aggregation
    - audit: Fire-and-forget decision audit trail and analytics sinks
    - engine: Operation dispatch with structured error payloads
    - web: FastAPI routes over the engine
"""

__version__ = "0.4.0"
