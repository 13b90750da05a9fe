"""
FraudFlow Alerting.

Components:
- synthesizer: Alert creation from an analysed event (threshold partition, severity)
- sla: SLA deadlines by severity and transfer urgency
- service: Assignment, transfer, investigation, closing and listing
"""
