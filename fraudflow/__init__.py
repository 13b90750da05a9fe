"""
FraudFlow - Fraud Investigation Workflow Core.

Architecture:
    Document → Scoring Gateway (classifier + tampering detector)
             → Event (immutable fact, durable first)
             → Historique (1:1 audit entry, idempotent projection)
             → Alert (only when risk crosses the configured thresholds)
             → Qualification Gate (human verdict, one-way)
             → Risk Ledger (only on fraud_confirmed)
             → Case (investigation grouping with team handovers)

Every step reports a typed outcome (success | skipped | failed) and the
orchestrator aggregates them into a ProcessingResult.
"""

__version__ = "1.0.0"
