"""
Composition root.

Builds the store, the scoring gateway and every workflow component once and
wires them by constructor injection. The API lifespan owns one container;
tests build their own with a MemoryStore and a mocked HTTP transport.
"""

from typing import Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from fraudflow.alerting.routing import AlertRouter
from fraudflow.alerting.service import AlertService
from fraudflow.alerting.synthesizer import AlertSynthesizer
from fraudflow.config import Settings
from fraudflow.db.engine import build_engine, build_session_factory, close_db, init_db
from fraudflow.db.store import MemoryStore, SqlStore, Store
from fraudflow.services.locks import KeyedLock
from fraudflow.services.notifier import Notifier
from fraudflow.services.scoring_gateway import ScoringGateway
from fraudflow.workflow.cases import CaseAggregator
from fraudflow.workflow.events import EventLog
from fraudflow.workflow.historique import HistoriqueProjector
from fraudflow.workflow.insights import WorkflowInsights
from fraudflow.workflow.orchestrator import WorkflowOrchestrator
from fraudflow.workflow.qualification import QualificationGate
from fraudflow.workflow.risk_ledger import RiskLedger

logger = structlog.get_logger(__name__)


class Container:
    def __init__(
        self,
        settings: Settings,
        store: Optional[Store] = None,
        notifier: Optional[Notifier] = None,
        gateway: Optional[ScoringGateway] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        self.settings = settings
        self.thresholds = settings.thresholds
        self.notifier = notifier or Notifier(keepalive_seconds=settings.sse_keepalive_seconds)
        self.store: Store = store or MemoryStore(self.notifier)
        self.engine = engine
        self.gateway = gateway or ScoringGateway.from_settings(settings)

        alert_locks = KeyedLock("alert")

        self.events = EventLog(self.store)
        self.historiques = HistoriqueProjector(self.store, self.events, self.thresholds)
        self.synthesizer = AlertSynthesizer(
            self.store, self.historiques, self.thresholds, settings.alert_sla_base_hours
        )
        self.alerts = AlertService(self.store, alert_locks)
        self.routing = AlertRouter(self.alerts, settings.alert_sla_base_hours)
        self.ledger = RiskLedger(self.store)
        self.qualification = QualificationGate(
            self.store, self.events, self.ledger, alert_locks, self.historiques
        )
        self.cases = CaseAggregator(self.store, self.alerts, self.events, self.historiques)
        self.orchestrator = WorkflowOrchestrator(self.events, self.historiques, self.synthesizer, self.gateway)
        self.insights = WorkflowInsights(self.events, self.historiques, self.alerts, self.ledger, self.cases)

    @classmethod
    async def create(
        cls, settings: Settings, http_client: Optional[httpx.AsyncClient] = None
    ) -> "Container":
        """Build a container for the configured store backend."""
        notifier = Notifier(keepalive_seconds=settings.sse_keepalive_seconds)
        gateway = ScoringGateway.from_settings(settings, client=http_client)
        if settings.store_backend == "sql":
            engine = build_engine(settings.async_database_url, echo=settings.db_echo)
            await init_db(engine)
            store: Store = SqlStore(build_session_factory(engine), notifier)
            logger.info("container_ready", store="sql")
            return cls(settings, store=store, notifier=notifier, gateway=gateway, engine=engine)

        logger.info("container_ready", store="memory")
        return cls(settings, notifier=notifier, gateway=gateway)

    async def aclose(self) -> None:
        await self.gateway.aclose()
        if self.engine is not None:
            await close_db(self.engine)
