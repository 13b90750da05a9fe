"""
Risk update port.

The Qualification Gate only knows this interface; the Risk Ledger implements
it. Neither imports the other.
"""

from typing import Protocol

from fraudflow.schemas.alert import Alert
from fraudflow.schemas.event import Event
from fraudflow.schemas.results import StepResult
from fraudflow.schemas.risque import Risque


class RiskUpdatePort(Protocol):
    async def confirm_fraud(self, person_id: str, alert: Alert, event: Event) -> StepResult[Risque]:
        """Escalate the person's risk profile for a confirmed fraud alert."""
        ...
