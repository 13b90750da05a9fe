"""
FraudFlow Workflow.

Components:
- events: Durable event log (record, mark processed, identify person)
- historique: Audit entry projection from events
- qualification: Human verdict on alerts (one-way)
- ports: Risk update port used by the qualification gate
- risk_ledger: Per-person risk profile, escalated only on confirmed fraud
- cases: Investigation cases, handovers, decisions, ROI metrics
- orchestrator: Upload → analysis → event → historique → alert saga
- insights: Person overview and workflow statistics
"""
