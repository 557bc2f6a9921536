"""Tests for the evidence editor: live matching, selection and submission."""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy.orm import Session

from impacttrace.evidence.links import create_evidence, delete_evidence
from impacttrace.evidence.repository import get_evidence, list_files_for_evidence
from impacttrace.models import Organization
from impacttrace.schemas.claim import KpiRead, LocationRead
from impacttrace.schemas.evidence import EvidenceCreate, EvidenceType
from impacttrace.services.evidence_editor import EvidenceEditor


@pytest.fixture
def new_editor(session_factory, user_id, initiative, kpi, location, file_store):
    editor = EvidenceEditor.for_new(
        session_factory,
        user_id,
        initiative.id,
        kpis=[KpiRead.model_validate(kpi)],
        locations=[LocationRead.model_validate(location)],
        file_store=file_store,
    )
    yield editor
    editor.close()


async def test_query_needs_a_kpi_and_a_date(new_editor, kpi, location, make_location):
    assert new_editor.query() is None
    new_editor.set_single_date(date(2024, 1, 5))
    assert new_editor.query() is None

    new_editor.set_kpis([kpi.id])
    assert new_editor.query().location_id is None

    new_editor.toggle_location(location.id)
    assert new_editor.query().location_id == location.id

    new_editor.toggle_location(make_location("Village B").id)
    assert new_editor.query().location_id is None
    await new_editor.matching.wait_idle()


async def test_first_match_selects_all_then_date_change_narrows(new_editor, kpi, make_claim):
    jan = [make_claim(kpi, day=date(2024, 1, 5)), make_claim(kpi, start=date(2024, 1, 1), end=date(2024, 1, 31))]

    new_editor.set_kpis([kpi.id])
    new_editor.set_single_date(date(2024, 1, 5))
    await new_editor.matching.wait_idle()

    assert set(new_editor.claim_selection.selected) == {c.id for c in jan}
    assert new_editor.result.per_kpi[0].kpi_title == "Liters delivered"

    new_editor.set_single_date(date(2024, 1, 20))
    await new_editor.matching.wait_idle()

    assert new_editor.claim_selection.selected == [jan[1].id]
    assert new_editor.dropped_claim_ids == (jan[0].id,)


async def test_average_coverage_over_selected_claims(new_editor, kpi, make_claim):
    make_claim(kpi, start=date(2024, 1, 1), end=date(2024, 1, 10))

    new_editor.set_kpis([kpi.id])
    new_editor.set_date_range(date(2024, 1, 5), date(2024, 1, 10))
    await new_editor.matching.wait_idle()

    assert new_editor.average_coverage == 60
    new_editor.claim_selection.clear()
    assert new_editor.average_coverage == 0


async def test_submit_new_evidence_uploads_files_and_links_matches(
    db: Session, new_editor, kpi, make_claim, organization, file_store
):
    claim = make_claim(kpi, day=date(2024, 1, 5))
    new_editor.title = "Delivery log"
    new_editor.type = EvidenceType.DOCUMENTATION
    new_editor.set_kpis([kpi.id])
    new_editor.set_single_date(date(2024, 1, 5))
    new_editor.add_file("log.pdf", b"12345", "application/pdf")

    result = await new_editor.submit(db)

    assert not result.partial
    evidence = result.evidence
    assert evidence.kpi_ids == [kpi.id]
    assert evidence.claim_ids == [claim.id]
    assert evidence.location_ids == []
    assert file_store.uploaded == [("log.pdf", 5, "application/pdf")]
    [stored] = list_files_for_evidence(db, evidence.id, evidence.user_id)
    assert stored.file_size == 5
    assert evidence.file_url == stored.file_url
    assert db.get(Organization, organization.id).storage_used_bytes == 10_005


async def test_submit_without_date_is_rejected(new_editor):
    new_editor.title = "No date"
    new_editor.type = EvidenceType.TESTIMONY
    with pytest.raises(ValueError):
        await new_editor.submit(None)


class TestEditing:
    @pytest.fixture
    def existing(self, db: Session, initiative, kpi, location, make_claim, user_id):
        claim = make_claim(kpi, day=date(2024, 1, 5))
        evidence = create_evidence(
            db,
            EvidenceCreate(
                initiative_id=initiative.id,
                title="Photos",
                type="visual_proof",
                date_represented=date(2024, 1, 5),
                kpi_ids=[kpi.id],
                claim_ids=[claim.id],
                location_ids=[location.id],
            ),
            user_id,
        ).evidence
        return evidence, claim

    async def test_untouched_links_are_left_alone(self, db: Session, session_factory, existing, user_id):
        evidence, claim = existing
        editor = EvidenceEditor.for_existing(session_factory, user_id, evidence)
        editor.title = "Photos (checked)"

        result = await editor.submit(db)

        assert result.evidence.title == "Photos (checked)"
        assert result.evidence.claim_ids == [claim.id]
        assert result.evidence.location_ids == evidence.location_ids

    async def test_baseline_rematch_keeps_persisted_claims(
        self, db: Session, session_factory, existing, kpi, make_claim, user_id
    ):
        evidence, claim = existing
        make_claim(kpi, day=date(2024, 1, 5))
        editor = EvidenceEditor.for_existing(session_factory, user_id, evidence)

        editor.refresh_matches()
        await editor.matching.wait_idle()

        assert editor.claim_selection.selected == [claim.id]
        assert editor.claim_selection.link_change().is_omit

    async def test_deselected_claim_is_unlinked(self, db: Session, session_factory, existing, user_id):
        evidence, claim = existing
        editor = EvidenceEditor.for_existing(session_factory, user_id, evidence)
        editor.claim_selection.deselect(claim.id)

        await editor.submit(db)

        stored = get_evidence(db, evidence.id, user_id)
        assert stored.claim_ids == []
        assert stored.kpi_ids == evidence.kpi_ids

    async def test_first_upload_fills_empty_file_url(
        self, db: Session, session_factory, existing, user_id, file_store
    ):
        evidence, _ = existing
        editor = EvidenceEditor.for_existing(
            session_factory, user_id, evidence, file_store=file_store
        )
        editor.add_file("new.jpg", b"img", "image/jpeg")

        result = await editor.submit(db)

        assert result.evidence.file_url.endswith("/new.jpg")
        # the row had no file before, so nothing was deleted
        assert file_store.deleted == []

    async def test_uploads_on_edit_are_tracked_and_released_on_delete(
        self, db: Session, session_factory, existing, organization, user_id, file_store
    ):
        evidence, _ = existing
        editor = EvidenceEditor.for_existing(
            session_factory, user_id, evidence, file_store=file_store
        )
        editor.add_file("a.jpg", b"x" * 100, "image/jpeg")
        editor.add_file("b.jpg", b"x" * 200, "image/jpeg")

        result = await editor.submit(db)

        assert db.get(Organization, organization.id).storage_used_bytes == 10_300
        files = list_files_for_evidence(db, evidence.id, user_id)
        assert [f.file_url.rsplit("/", 1)[-1] for f in files] == ["a.jpg", "b.jpg"]
        assert [f.file_size for f in files] == [100, 200]
        assert result.evidence.file_url == files[0].file_url

        deleted = await delete_evidence(db, evidence.id, user_id, file_store)

        assert deleted.files == 2
        assert deleted.bytes_released == 300
        assert db.get(Organization, organization.id).storage_used_bytes == 10_000
        assert sorted(file_store.deleted) == sorted(f.file_url for f in files)

    async def test_invalid_edit_uploads_nothing(
        self, db: Session, session_factory, existing, organization, user_id, file_store
    ):
        evidence, _ = existing
        editor = EvidenceEditor.for_existing(
            session_factory, user_id, evidence, file_store=file_store
        )
        editor.title = ""
        editor.add_file("a.jpg", b"img", "image/jpeg")

        with pytest.raises(ValidationError):
            await editor.submit(db)

        assert file_store.uploaded == []
        assert editor.pending_files
        assert db.get(Organization, organization.id).storage_used_bytes == 10_000

    async def test_first_date_change_drops_claims_outside_new_date(
        self, db: Session, session_factory, existing, user_id
    ):
        evidence, claim = existing
        editor = EvidenceEditor.for_existing(session_factory, user_id, evidence)

        editor.set_single_date(date(2024, 2, 1))
        await editor.matching.wait_idle()

        assert claim.id not in editor.claim_selection
        assert editor.dropped_claim_ids == (claim.id,)

        await editor.submit(db)

        assert get_evidence(db, evidence.id, user_id).claim_ids == []


def test_editor_is_not_an_edit_without_evidence(session_factory, initiative):
    editor = EvidenceEditor.for_new(session_factory, uuid.uuid4(), initiative.id)
    assert not editor.is_edit
