"""
Historique Projector - one audit entry per processed event.

Pipeline:
1. Lock the event id and re-read the event
2. Return the existing entry if the event was already projected
3. Classify (category + impact) from the event type, payload score and priority
4. Insert the entry under a deterministic id, then stamp event.processed_at

The entry id is derived from the event id, so a racing second projection
fails the insert instead of writing a duplicate.
"""

from typing import Optional

import structlog

from fraudflow.config import Thresholds
from fraudflow.db.repositories.base import Repository
from fraudflow.db.store import Store
from fraudflow.errors import ConcurrencyConflict, ConsistencyViolation, InvalidTransition
from fraudflow.schemas.common import Priority, utcnow
from fraudflow.schemas.event import Event, EventCategory
from fraudflow.schemas.historique import (
    UNKNOWN_ASSURE,
    Correction,
    HistoriqueCategory,
    HistoriqueEntry,
    HistoriqueStatus,
    Impact,
)
from fraudflow.schemas.results import SkipReason, StepResult
from fraudflow.services.locks import KeyedLock
from fraudflow.workflow.events import EventLog

logger = structlog.get_logger(__name__)


# ── Classification table ───────────────────────────────────────────────

CATEGORY_BY_TYPE: dict[str, HistoriqueCategory] = {
    "document_upload": HistoriqueCategory.OPERATIONNEL,
    "analyse_document": HistoriqueCategory.OPERATIONNEL,
    "declaration_sinistre": HistoriqueCategory.SINISTRE,
    "modification_contrat": HistoriqueCategory.COMMERCIAL,
    "paiement": HistoriqueCategory.COMMERCIAL,
    "detection_fraude": HistoriqueCategory.FRAUDE,
}

TITLE_BY_TYPE: dict[str, str] = {
    "document_upload": "Document uploaded",
    "analyse_document": "Document analysed",
    "declaration_sinistre": "Claim declared",
    "modification_contrat": "Contract modified",
    "paiement": "Payment recorded",
    "detection_fraude": "Fraud detection",
}

CLOSING_STATUSES = frozenset({HistoriqueStatus.COMPLETED, HistoriqueStatus.CANCELLED, HistoriqueStatus.ERROR})


def historique_id_for(event_id: str) -> str:
    return f"HIST-{event_id}"


def classify_event(
    event: Event, thresholds: Thresholds, risk_score: Optional[float] = None
) -> tuple[HistoriqueCategory, Impact]:
    """
    Deterministic (category, impact) for an event.

    A payload risk score at or above the suspicion minimum makes the entry a
    fraud entry whatever the event type.
    """
    category = CATEGORY_BY_TYPE.get(event.type, HistoriqueCategory.TECHNIQUE)
    if event.category == EventCategory.FRAUDE:
        category = HistoriqueCategory.FRAUDE

    score = risk_score if risk_score is not None else event.risk_score
    if score is not None:
        s = round(score * 100, 6)
        if s >= thresholds.fraud_threshold:
            return HistoriqueCategory.FRAUDE, Impact.CRITICAL
        if s >= thresholds.suspicion_min:
            return HistoriqueCategory.FRAUDE, Impact.HIGH

    if event.type not in CATEGORY_BY_TYPE:
        return category, Impact.LOW
    if event.priority == Priority.CRITICAL:
        return category, Impact.CRITICAL
    if event.priority == Priority.HIGH:
        return category, Impact.HIGH
    if category == HistoriqueCategory.FRAUDE:
        return category, Impact.HIGH
    if category == HistoriqueCategory.SINISTRE:
        return category, Impact.MEDIUM
    return category, Impact.LOW


def _describe(event: Event, risk_score: Optional[float] = None) -> str:
    parts = [f"Event {event.tracking_number} ({event.type}) via {event.channel}"]
    filename = event.data.get("filename") or event.data.get("documentName")
    if filename:
        parts.append(f"document {filename}")
    score = risk_score if risk_score is not None else event.risk_score
    if score is not None:
        parts.append(f"risk score {round(score * 100, 1)}")
    return ", ".join(parts)


class HistoriqueProjector:
    def __init__(self, store: Store, events: EventLog, thresholds: Thresholds):
        self.repo: Repository[HistoriqueEntry] = Repository(store, "historiques", HistoriqueEntry)
        self.events = events
        self.thresholds = thresholds
        self._event_locks = KeyedLock("historique-event")
        self._entry_locks = KeyedLock("historique-entry")

    # ── Projection ─────────────────────────────────────────────────────

    async def project(self, event: Event, risk_score: Optional[float] = None) -> StepResult[HistoriqueEntry]:
        """Create the audit entry for an event; idempotent."""
        async with self._event_locks.hold(event.id):
            current = await self.events.require(event.id)
            existing = await self.repo.get(historique_id_for(current.id))
            if existing is not None:
                # A previous run may have stopped between insert and stamp.
                await self.events.mark_processed(current)
                logger.debug("historique_already_projected", event_id=current.id, historique_id=existing.id)
                return StepResult.skip(SkipReason.ALREADY_PROCESSED, existing)
            if current.is_processed:
                return StepResult.skip(SkipReason.ALREADY_PROCESSED)

            category, impact = classify_event(current, self.thresholds, risk_score)
            entry = HistoriqueEntry(
                id=historique_id_for(current.id),
                event_id=current.id,
                assure_id=current.assure_id or UNKNOWN_ASSURE,
                event_type=current.type,
                category=category,
                impact=impact,
                title=TITLE_BY_TYPE.get(current.type, "Event recorded"),
                description=_describe(current, risk_score),
            )
            try:
                entry = await self.repo.add(entry)
            except ConcurrencyConflict:
                existing = await self.repo.require(entry.id)
                return StepResult.skip(SkipReason.ALREADY_PROCESSED, existing)

            await self.events.mark_processed(current)

        logger.info(
            "historique_projected",
            event_id=current.id,
            historique_id=entry.id,
            category=category,
            impact=impact,
            assure_id=entry.assure_id,
        )
        return StepResult.ok(entry)

    # ── Reads ──────────────────────────────────────────────────────────

    async def get(self, historique_id: str) -> Optional[HistoriqueEntry]:
        return await self.repo.get(historique_id)

    async def require(self, historique_id: str) -> HistoriqueEntry:
        return await self.repo.require(historique_id)

    async def for_event(self, event_id: str) -> Optional[HistoriqueEntry]:
        return await self.repo.get(historique_id_for(event_id))

    async def list(
        self,
        assure_id: Optional[str] = None,
        category: Optional[HistoriqueCategory] = None,
        status: Optional[HistoriqueStatus] = None,
        impact: Optional[Impact] = None,
    ) -> list[HistoriqueEntry]:
        def match(h: HistoriqueEntry) -> bool:
            return (
                (assure_id is None or h.assure_id == assure_id)
                and (category is None or h.category == category)
                and (status is None or h.status == status)
                and (impact is None or h.impact == impact)
            )

        return await self.repo.list(match)

    # ── Permitted mutations ────────────────────────────────────────────

    async def identify_person(
        self, event_id: str, assure_id: str, identified_by: str = "system"
    ) -> Optional[HistoriqueEntry]:
        """
        Attach a person to an event and replace the placeholder on its entry.

        The event's assure_id is filled once; the entry keeps a correction
        recording the placeholder it replaced.
        """
        async with self._event_locks.hold(event_id):
            await self.events.identify_person(event_id, assure_id)
            entry_id = historique_id_for(event_id)
            async with self._entry_locks.hold(entry_id):
                entry = await self.repo.get(entry_id)
                if entry is None or entry.assure_id == assure_id:
                    return entry
                if entry.assure_id != UNKNOWN_ASSURE:
                    raise ConsistencyViolation(
                        f"Historique {entry.id} already belongs to {entry.assure_id}",
                        historique_id=entry.id,
                    )
                correction = Correction(
                    field="assure_id",
                    old_value=entry.assure_id,
                    new_value=assure_id,
                    reason="person identified",
                    corrected_by=identified_by,
                )
                entry = await self.repo.save(
                    entry.model_copy(
                        update={"assure_id": assure_id, "corrections": [*entry.corrections, correction]}
                    )
                )
        logger.info("historique_person_identified", historique_id=entry.id, assure_id=assure_id)
        return entry

    async def link(
        self,
        historique_id: str,
        alerte_id: Optional[str] = None,
        dossier_id: Optional[str] = None,
        risque_id: Optional[str] = None,
    ) -> HistoriqueEntry:
        """Append related entity ids (no duplicates)."""
        async with self._entry_locks.hold(historique_id):
            entry = await self.repo.require(historique_id)
            related = entry.related_entities.model_copy(deep=True)
            changed = False
            for values, new in (
                (related.alerte_ids, alerte_id),
                (related.dossier_ids, dossier_id),
                (related.risque_ids, risque_id),
            ):
                if new and new not in values:
                    values.append(new)
                    changed = True
            if not changed:
                return entry
            return await self.repo.save(entry.model_copy(update={"related_entities": related}))

    async def complete(
        self, historique_id: str, status: HistoriqueStatus = HistoriqueStatus.COMPLETED
    ) -> HistoriqueEntry:
        if status not in CLOSING_STATUSES:
            raise InvalidTransition(f"Cannot move a historique entry to {status}")
        async with self._entry_locks.hold(historique_id):
            entry = await self.repo.require(historique_id)
            if entry.status != HistoriqueStatus.ACTIVE:
                raise InvalidTransition(
                    f"Historique {historique_id} is {entry.status}, only active entries can be closed"
                )
            entry = await self.repo.save(
                entry.model_copy(update={"status": status, "completed_at": utcnow()})
            )
        logger.info("historique_closed", historique_id=historique_id, status=status)
        return entry
