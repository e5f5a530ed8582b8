"""Tests for proposal operations."""

import tempfile
from datetime import date
from pathlib import Path

import pytest

from project_tracker.core import proposals as proposals_mod
from project_tracker.core.errors import InvalidTransition, NotFound, ValidationError
from project_tracker.db.engine import init_db

TODAY = date(2024, 3, 15)


@pytest.fixture
def db():
    with tempfile.TemporaryDirectory() as tmp:
        conn = init_db(Path(tmp) / "test.db")
        yield conn
        conn.close()


class TestProposalCRUD:
    def test_create_defaults(self, db):
        p = proposals_mod.create_proposal(db, "Website redesign", client_name="Acme")
        assert p.id == "website-redesign"
        assert p.stage == "draft"
        assert p.probability_to_close == 0
        assert p.draft_date is None

    def test_create_stamps_entry_stage(self, db):
        p = proposals_mod.create_proposal(db, "Retainer", today=TODAY)
        assert p.draft_date == TODAY

    def test_create_keeps_supplied_date(self, db):
        p = proposals_mod.create_proposal(db, "Retainer", today=TODAY, draft_date="2024-01-02")
        assert p.draft_date == date(2024, 1, 2)

    def test_create_at_later_stage(self, db):
        p = proposals_mod.create_proposal(db, "Imported", stage="negotiation", today=TODAY)
        assert p.stage == "negotiation"
        assert p.negotiation_date == TODAY
        assert p.draft_date is None

    def test_title_required(self, db):
        with pytest.raises(ValidationError):
            proposals_mod.create_proposal(db, "")

    @pytest.mark.parametrize("probability", [-1, 101, 50.5, True])
    def test_probability_range(self, db, probability):
        with pytest.raises(ValidationError):
            proposals_mod.create_proposal(db, "Bad odds", probability_to_close=probability)

    def test_unknown_stage(self, db):
        with pytest.raises(ValidationError):
            proposals_mod.create_proposal(db, "Lost cause", stage="lost")

    def test_unknown_date_field(self, db):
        with pytest.raises(ValidationError):
            proposals_mod.create_proposal(db, "Odd", invoice_date="2024-01-01")

    def test_get_missing(self, db):
        with pytest.raises(NotFound):
            proposals_mod.get_proposal(db, "missing")

    def test_list_by_stage(self, db):
        proposals_mod.create_proposal(db, "A")
        proposals_mod.create_proposal(db, "B", stage="approved")
        assert [p.id for p in proposals_mod.list_proposals(db, stage="approved")] == ["b"]
        assert len(proposals_mod.list_proposals(db)) == 2

    def test_update_fields(self, db):
        proposals_mod.create_proposal(db, "Deal")
        p = proposals_mod.update_proposal(db, "deal", value=12500.0, probability_to_close=60)
        assert p.value == 12500.0
        assert p.probability_to_close == 60

    def test_update_stage_directly_does_not_stamp(self, db):
        proposals_mod.create_proposal(db, "Deal")
        p = proposals_mod.update_proposal(db, "deal", stage="contract_signed")
        assert p.stage == "contract_signed"
        assert p.signed_date is None

    def test_delete(self, db):
        proposals_mod.create_proposal(db, "Deal")
        proposals_mod.delete_proposal(db, "deal")
        with pytest.raises(NotFound):
            proposals_mod.get_proposal(db, "deal")


class TestAdvanceProposal:
    def test_advance_persists(self, db):
        proposals_mod.create_proposal(db, "Deal", draft_date="2024-03-01")
        p = proposals_mod.advance_proposal(db, "deal", TODAY)
        assert p.stage == "sent_to_client"
        assert p.sent_date == TODAY
        assert p.draft_date == date(2024, 3, 1)
        assert proposals_mod.get_proposal(db, "deal").stage == "sent_to_client"

    def test_advance_at_terminal(self, db):
        proposals_mod.create_proposal(db, "Done deal", stage="contract_signed")
        with pytest.raises(InvalidTransition):
            proposals_mod.advance_proposal(db, "done-deal", TODAY)
        assert proposals_mod.get_proposal(db, "done-deal").stage == "contract_signed"

    def test_advance_missing(self, db):
        with pytest.raises(NotFound):
            proposals_mod.advance_proposal(db, "ghost", TODAY)

    def test_set_stage_backward(self, db):
        proposals_mod.create_proposal(db, "Deal", stage="approved", approval_date="2024-03-10")
        p = proposals_mod.set_proposal_stage(db, "deal", "revision")
        assert p.stage == "revision"
        assert p.approval_date == date(2024, 3, 10)
        assert p.revision_date is None

    def test_set_stage_with_stamp(self, db):
        proposals_mod.create_proposal(db, "Deal")
        p = proposals_mod.set_proposal_stage(db, "deal", "client_review", TODAY)
        assert p.review_date == TODAY


class TestPipelineSummary:
    def test_empty(self):
        summary = proposals_mod.pipeline_summary([])
        assert summary["total"] == 0
        assert summary["average_probability"] == 0.0
        assert len(summary["by_stage"]) == 7

    def test_counts(self, db):
        proposals_mod.create_proposal(db, "A", value=1000.0, probability_to_close=20)
        proposals_mod.create_proposal(db, "B", value=500.0, probability_to_close=80, stage="contract_signed")
        proposals_mod.create_proposal(db, "C", probability_to_close=50)
        summary = proposals_mod.pipeline_summary(proposals_mod.list_proposals(db))
        assert summary["total"] == 3
        assert summary["open"] == 2
        assert summary["total_value"] == 1500.0
        assert summary["average_probability"] == pytest.approx(50.0)
        by_stage = {s["stage"]: s["count"] for s in summary["by_stage"]}
        assert by_stage["draft"] == 2
        assert by_stage["contract_signed"] == 1
