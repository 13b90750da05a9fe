"""
Tests for pattern detection over a person's history.

Covers:
- Frequency patterns inside the rolling window, per category and type
- Threshold, window, cancelled entries and other persons
- Same-rule alert correlations and their decaying strength
- False positives are not evidence
- The person patterns view and its endpoint
"""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from fraudflow.main import create_app
from fraudflow.schemas.alert import Alert, AlertMetadata, AlertSeverity, Qualification
from fraudflow.schemas.common import utcnow
from fraudflow.schemas.historique import HistoriqueCategory, HistoriqueEntry, HistoriqueStatus, Impact
from fraudflow.workflow.patterns import Significance, detect_correlations, detect_patterns

PERSON = "ASS-42"


def _entries(count, days_ago=1, category=HistoriqueCategory.SINISTRE, assure_id=PERSON, **kw):
    now = utcnow()
    return [
        HistoriqueEntry(
            event_id=f"EVT-{category}-{days_ago}-{i}",
            assure_id=assure_id,
            event_type="declaration_sinistre",
            category=category,
            impact=Impact.LOW,
            title="Claim declared",
            created_at=now - timedelta(days=days_ago, minutes=i),
            **kw,
        )
        for i in range(count)
    ]


def _alert(hours_ago, rule="document_risk", **kw) -> Alert:
    return Alert(
        event_id="EVT-1",
        historique_id="HIST-1",
        rule=rule,
        title="Suspicious document",
        severity=AlertSeverity.HIGH,
        score=88.0,
        created_at=utcnow() - timedelta(hours=hours_ago),
        **kw,
    )


# ============================================================================
# FREQUENCY PATTERNS
# ============================================================================


class TestDetectPatterns:
    def test_repeated_declarations(self):
        patterns = detect_patterns(PERSON, _entries(6))
        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.occurrences == 6
        assert pattern.category == HistoriqueCategory.SINISTRE
        assert pattern.confidence == 0.6
        assert pattern.significance == Significance.LOW
        assert pattern.window_days == 30
        assert pattern.first_seen < pattern.last_seen
        assert len(pattern.historique_ids) == 6

    def test_at_threshold_is_not_a_pattern(self):
        assert detect_patterns(PERSON, _entries(5)) == []

    def test_old_entries_fall_outside_window(self):
        entries = _entries(4, days_ago=2) + _entries(3, days_ago=45)
        assert detect_patterns(PERSON, entries) == []

    def test_cancelled_entries_ignored(self):
        entries = _entries(4) + _entries(3, days_ago=2, status=HistoriqueStatus.CANCELLED)
        assert detect_patterns(PERSON, entries) == []

    def test_other_person_ignored(self):
        entries = _entries(4) + _entries(3, days_ago=2, assure_id="ASS-other")
        assert detect_patterns(PERSON, entries) == []

    @pytest.mark.parametrize(
        "count,significance,confidence",
        [(8, Significance.MEDIUM, 0.8), (11, Significance.HIGH, 1.0), (14, Significance.HIGH, 1.0)],
    )
    def test_significance_grows_with_count(self, count, significance, confidence):
        (pattern,) = detect_patterns(PERSON, _entries(count))
        assert pattern.significance == significance
        assert pattern.confidence == confidence

    def test_grouped_per_category_most_frequent_first(self):
        entries = _entries(6) + _entries(9, days_ago=3, category=HistoriqueCategory.FRAUDE)
        patterns = detect_patterns(PERSON, entries)
        assert [p.category for p in patterns] == [HistoriqueCategory.FRAUDE, HistoriqueCategory.SINISTRE]
        assert [p.occurrences for p in patterns] == [9, 6]


# ============================================================================
# CORRELATIONS
# ============================================================================


class TestDetectCorrelations:
    def test_same_rule_two_days_apart(self):
        later, earlier = _alert(hours_ago=0), _alert(hours_ago=48)
        (corr,) = detect_correlations(PERSON, [later, earlier])
        assert corr.primary_alert_id == earlier.id
        assert corr.correlated_alert_id == later.id
        assert corr.days_apart == 2.0
        assert corr.strength == 0.71

    def test_strength_has_a_floor(self):
        (corr,) = detect_correlations(PERSON, [_alert(hours_ago=0), _alert(hours_ago=156)])
        assert corr.strength == 0.3

    def test_outside_window(self):
        assert detect_correlations(PERSON, [_alert(hours_ago=0), _alert(hours_ago=24 * 8)]) == []

    def test_different_rules(self):
        assert detect_correlations(PERSON, [_alert(0), _alert(1, rule="tampering")]) == []

    def test_false_positive_is_not_evidence(self):
        dismissed = _alert(
            hours_ago=1, metadata=AlertMetadata(qualification=Qualification.FALSE_POSITIVE)
        )
        assert detect_correlations(PERSON, [_alert(hours_ago=0), dismissed]) == []

    def test_strongest_first(self):
        alerts = [_alert(hours_ago=0), _alert(hours_ago=12), _alert(hours_ago=120)]
        strengths = [c.strength for c in detect_correlations(PERSON, alerts)]
        assert strengths == sorted(strengths, reverse=True)
        assert len(strengths) == 3


# ============================================================================
# PERSON VIEW
# ============================================================================


class TestPersonPatterns:
    @pytest.mark.asyncio
    async def test_repeated_uploads(self, container, raise_alert):
        for _ in range(6):
            await raise_alert(assure_id=PERSON)
        await raise_alert(assure_id="ASS-other")

        view = await container.insights.patterns(PERSON)
        assert view["assure_id"] == PERSON
        (pattern,) = view["patterns"]
        assert pattern.occurrences == 6
        assert len(view["correlations"]) == 15
        assert all(c.assure_id == PERSON for c in view["correlations"])

    @pytest.mark.asyncio
    async def test_endpoint(self, container, raise_alert):
        await raise_alert(assure_id=PERSON)
        await raise_alert(assure_id=PERSON)
        app = create_app(container=container)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get(f"/api/v1/persons/{PERSON}/patterns")
        assert response.status_code == 200
        body = response.json()
        assert body["patterns"] == []
        assert len(body["correlations"]) == 1
