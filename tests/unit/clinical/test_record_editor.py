"""
Tests for the form save/delete flows.

Validation failures must surface to the caller and leave the store
untouched; store failures surface as StoreError.
"""

from datetime import UTC, date, datetime
from typing import Any

import pytest

from adapters.local_store import InMemoryRecordStore
from clinical.domain.errors import NotFoundError, StoreError, ValidationError
from clinical.domain.models import AnyRecord, EntityKind, InsuranceCard, Measurement
from clinical.services.measurement_history import MeasurementHistoryAggregator
from clinical.services.record_editor import RecordEditor, build_record
from clinical.services.record_resolver import FormSession, RecordResolver, ResolutionStatus
from clinical.services.record_store import Result
from clinical.services.trend_analysis import TrendDirection, classify

CARD_FORM: dict[str, Any] = {
    "policy_number": "HS4-0101-20202-30303",
    "prefix_code": "HS",
    "coverage_percent": 80,
    "copay_rate": 20,
    "valid_from": date(2024, 9, 1),
    "valid_to": date(2025, 8, 31),
}

ROM_FORM: dict[str, Any] = {
    "type": "ROM",
    "target": "knee",
    "side": "right",
    "value": 85,
    "recorded_at": datetime(2024, 2, 1, tzinfo=UTC),
    "recorded_by": "therapist-1",
}


class FailingSaveStore(InMemoryRecordStore):
    async def save(self, record: AnyRecord) -> Result[AnyRecord, StoreError]:
        return Result.err(StoreError("disk full"))


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def editor(store: InMemoryRecordStore) -> RecordEditor:
    return RecordEditor(store)


class TestInsuranceCardSave:
    @pytest.mark.asyncio
    async def test_create_inserts_new_card(
        self, editor: RecordEditor, store: InMemoryRecordStore
    ) -> None:
        card = await editor.save_insurance_card("P1", CARD_FORM)

        assert card.patient_id == "P1"
        assert (await store.find(card.id)).unwrap() == card
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_create_ignores_form_supplied_id(self, editor: RecordEditor) -> None:
        card = await editor.save_insurance_card("P1", {**CARD_FORM, "id": "forged"})
        assert card.id != "forged"

    @pytest.mark.asyncio
    async def test_update_keeps_identity(
        self, editor: RecordEditor, store: InMemoryRecordStore
    ) -> None:
        original = await editor.save_insurance_card("P1", CARD_FORM)

        updated = await editor.save_insurance_card(
            "P1", {**CARD_FORM, "coverage_percent": 100, "copay_rate": 0}, existing=original
        )

        assert updated.id == original.id
        assert updated.created_at == original.created_at
        assert updated.updated_at >= original.updated_at
        assert updated.coverage_percent == 100
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_update_cannot_change_patient(self, editor: RecordEditor) -> None:
        original = await editor.save_insurance_card("P1", CARD_FORM)

        with pytest.raises(ValidationError, match="another patient"):
            await editor.save_insurance_card("P2", CARD_FORM, existing=original)

    @pytest.mark.asyncio
    async def test_invalid_card_raises_and_is_not_persisted(
        self, editor: RecordEditor, store: InMemoryRecordStore
    ) -> None:
        with pytest.raises(ValidationError) as excinfo:
            await editor.save_insurance_card("P1", {**CARD_FORM, "policy_number": "12345"})

        assert any("invalid card format" in message for message in excinfo.value.errors)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_store_failure_raises_store_error(self) -> None:
        editor = RecordEditor(FailingSaveStore())

        with pytest.raises(StoreError, match="disk full"):
            await editor.save_insurance_card("P1", CARD_FORM)

    @pytest.mark.asyncio
    async def test_submit_from_create_session_then_edit(
        self, editor: RecordEditor, store: InMemoryRecordStore
    ) -> None:
        session = FormSession(RecordResolver(store, EntityKind.INSURANCE_CARD))
        await session.open(None)

        created = await editor.submit_card(session, "P1", CARD_FORM)
        assert session.state.status == ResolutionStatus.FOUND
        assert session.state.record == created

        edited = await editor.submit_card(session, "P1", {**CARD_FORM, "notes": "renewed"})
        assert edited.id == created.id
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_delete_card(self, editor: RecordEditor, store: InMemoryRecordStore) -> None:
        card = await editor.save_insurance_card("P1", CARD_FORM)

        deleted = await editor.delete_insurance_card(card.id)

        assert deleted == card
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_delete_unknown_card_raises(self, editor: RecordEditor) -> None:
        with pytest.raises(NotFoundError):
            await editor.delete_insurance_card("missing")

    @pytest.mark.asyncio
    async def test_delete_refuses_measurements(self, editor: RecordEditor) -> None:
        measurement = await editor.record_measurement("P1", ROM_FORM)

        with pytest.raises(NotFoundError):
            await editor.delete_insurance_card(measurement.id)


class TestMeasurementRecording:
    @pytest.mark.asyncio
    async def test_record_measurement_appends(
        self, editor: RecordEditor, store: InMemoryRecordStore
    ) -> None:
        measurement = await editor.record_measurement("P1", ROM_FORM)

        assert isinstance(measurement, Measurement)
        assert measurement.patient_id == "P1"
        assert measurement.recorded_at == ROM_FORM["recorded_at"]
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_out_of_domain_measurement_is_rejected(
        self, editor: RecordEditor, store: InMemoryRecordStore
    ) -> None:
        with pytest.raises(ValidationError, match="ROM degree"):
            await editor.record_measurement("P1", {**ROM_FORM, "value": 175})
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_correction_is_a_new_measurement(
        self, editor: RecordEditor, store: InMemoryRecordStore
    ) -> None:
        original = await editor.record_measurement("P1", ROM_FORM)

        correction = await editor.record_correction(original, {"value": 88, "side": "left"})

        assert correction.id != original.id
        assert correction.value == 88
        assert correction.group_key == original.group_key
        assert correction.corrects_id == original.id
        assert correction.recorded_at == original.recorded_at
        assert original.id in (correction.notes or "")
        assert (await store.find(original.id)).unwrap() == original
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_corrected_typo_does_not_move_the_trend(
        self, editor: RecordEditor, store: InMemoryRecordStore
    ) -> None:
        readings = []
        for month, value in [(1, 80), (2, 140)]:
            recorded_at = datetime(2024, month, 1, tzinfo=UTC)
            form = {**ROM_FORM, "value": value, "recorded_at": recorded_at}
            readings.append(await editor.record_measurement("P1", form))
        await editor.record_correction(readings[1], {"value": 84})

        groups = await MeasurementHistoryAggregator(store).aggregate("P1")
        history = groups[readings[0].group_key]

        assert history.values() == [80, 84]
        assert classify(history).direction == TrendDirection.STABLE


class TestInsuranceCardUpdate:
    @pytest.mark.asyncio
    async def test_partial_update_keeps_unsubmitted_fields(self, editor: RecordEditor) -> None:
        original = await editor.save_insurance_card(
            "P1",
            {
                **CARD_FORM,
                "notes": "front desk copy",
                "is_verified": True,
                "hospital_registration_code": "79001",
                "expiration_date": date(2025, 6, 30),
            },
        )

        updated = await editor.save_insurance_card("P1", {"copay_rate": 30}, existing=original)

        assert updated.copay_rate == 30
        assert updated.notes == "front desk copy"
        assert updated.is_verified is True
        assert updated.hospital_registration_code == "79001"
        assert updated.expiration_date == date(2025, 6, 30)
        assert updated.policy_number == original.policy_number

    @pytest.mark.asyncio
    async def test_new_card_number_clears_verification(self, editor: RecordEditor) -> None:
        original = await editor.save_insurance_card("P1", {**CARD_FORM, "is_verified": True})

        updated = await editor.save_insurance_card(
            "P1", {"policy_number": "TE1-0001-00002-00003"}, existing=original
        )

        assert updated.is_verified is False
        assert updated.prefix_code == "TE"

    @pytest.mark.asyncio
    async def test_same_card_number_keeps_verification(self, editor: RecordEditor) -> None:
        original = await editor.save_insurance_card("P1", {**CARD_FORM, "is_verified": True})

        updated = await editor.save_insurance_card(
            "P1", {"policy_number": " hs4-0101-20202-30303 "}, existing=original
        )

        assert updated.is_verified is True


def test_build_record_translates_pydantic_errors() -> None:
    with pytest.raises(ValidationError) as excinfo:
        build_record(InsuranceCard, {"patient_id": "P1"})

    assert any(message.startswith("policy_number:") for message in excinfo.value.errors)
    assert isinstance(excinfo.value, ValueError)
