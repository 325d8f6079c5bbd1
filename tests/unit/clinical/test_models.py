"""
Tests for clinical domain models.

Covers:
- Measurement value domains (joint-specific ROM limits, integer MMT grades)
- Measurement immutability, timestamp and target normalization
- InsuranceCard BHYT validation, expiry and coverage helpers
"""

from datetime import UTC, date, datetime

import pytest
from hypothesis import given
from hypothesis import strategies as st

from clinical.domain.models import (
    JOINT_MAX_DEGREES,
    GroupKey,
    InsuranceCard,
    Measurement,
    MeasurementType,
    ROMJoint,
    Side,
    default_coverage_for_prefix,
    max_degrees_for,
)


def _measurement(**overrides: object) -> Measurement:
    data: dict[str, object] = {
        "patient_id": "P1",
        "type": MeasurementType.ROM,
        "target": "knee",
        "side": Side.RIGHT,
        "value": 90,
        "recorded_by": "therapist-1",
    }
    data.update(overrides)
    return Measurement(**data)  # type: ignore[arg-type]


def _card(**overrides: object) -> InsuranceCard:
    data: dict[str, object] = {
        "patient_id": "P1",
        "policy_number": "DN4-0123-45678-90123",
        "prefix_code": "DN",
        "valid_from": date(2024, 1, 1),
        "valid_to": date(2025, 1, 1),
    }
    data.update(overrides)
    return InsuranceCard(**data)  # type: ignore[arg-type]


class TestMeasurement:
    @given(joint=st.sampled_from(list(ROMJoint)), fraction=st.floats(min_value=0.0, max_value=1.0))
    def test_rom_within_joint_limit_is_accepted(self, joint: ROMJoint, fraction: float) -> None:
        value = JOINT_MAX_DEGREES[joint] * fraction
        measurement = _measurement(target=joint.value, value=value)
        assert measurement.value == value

    def test_rom_above_joint_limit_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="outside 0-150 for knee"):
            _measurement(target="knee", value=151)

    def test_negative_rom_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            _measurement(value=-1)

    def test_unknown_rom_target_uses_full_circle(self) -> None:
        assert max_degrees_for("great_toe") == 360
        assert _measurement(target="great toe", value=300).value == 300

    @pytest.mark.parametrize("grade", [0, 1, 2, 3, 4, 5])
    def test_mmt_integer_grades_are_accepted(self, grade: int) -> None:
        measurement = _measurement(type=MeasurementType.MMT, target="Quadriceps", value=grade)
        assert measurement.value == grade
        assert measurement.unit == "grade"

    @pytest.mark.parametrize("grade", [-1, 3.5, 6])
    def test_mmt_out_of_domain_is_rejected(self, grade: float) -> None:
        with pytest.raises(ValueError, match="MMT grade"):
            _measurement(type=MeasurementType.MMT, target="quadriceps", value=grade)

    def test_non_finite_value_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            _measurement(value=float("nan"))

    def test_patient_id_is_required(self) -> None:
        with pytest.raises(ValueError):
            _measurement(patient_id="")

    def test_measurement_is_immutable(self) -> None:
        measurement = _measurement()
        with pytest.raises(ValueError, match="frozen"):
            measurement.value = 100  # type: ignore[misc]

    def test_naive_timestamp_is_taken_as_utc(self) -> None:
        measurement = _measurement(recorded_at=datetime(2024, 1, 1, 9, 30))
        assert measurement.recorded_at.tzinfo == UTC

    def test_default_timestamp_and_id(self) -> None:
        first = _measurement()
        second = _measurement()
        assert first.id != second.id
        assert first.recorded_at.tzinfo == UTC

    def test_target_is_normalized_and_drives_group_key(self) -> None:
        measurement = _measurement(
            type=MeasurementType.MMT, target="  Hip Flexors ", side=Side.LEFT, value=4
        )
        assert measurement.target == "hip_flexors"
        assert measurement.group_key == GroupKey(MeasurementType.MMT, "hip_flexors", Side.LEFT)

    def test_measurement_cannot_correct_itself(self) -> None:
        with pytest.raises(ValueError, match="cannot correct itself"):
            _measurement(id="m1", corrects_id="m1")

    def test_blank_target_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            _measurement(target="   ")


class TestInsuranceCard:
    def test_valid_card(self) -> None:
        card = _card(policy_number="dn4-0123-45678-90123", prefix_code="dn")
        assert card.policy_number == "DN4-0123-45678-90123"
        assert card.prefix_code == "DN"
        assert card.provider == "BHYT"
        assert card.kind == "insurance_card"

    @pytest.mark.parametrize(
        "overrides,match",
        [
            ({"policy_number": "DN401234567890123"}, "invalid card format"),
            ({"prefix_code": "ZZ"}, "unknown BHYT prefix"),
            ({"prefix_code": "D1"}, "2 uppercase letters"),
            ({"coverage_percent": 101}, "less than or equal"),
            ({"copay_rate": -5}, "greater than or equal"),
            ({"hospital_registration_code": "1234"}, "exactly 5 characters"),
            ({"valid_to": date(2023, 12, 31)}, "valid_from must be before valid_to"),
        ],
    )
    def test_invalid_cards_are_rejected(self, overrides: dict[str, object], match: str) -> None:
        with pytest.raises(ValueError, match=match):
            _card(**overrides)

    def test_prefix_must_match_card_number(self) -> None:
        with pytest.raises(ValueError, match="does not match card number"):
            _card(policy_number="HS4-0101-20202-30303", prefix_code="TE")

    @pytest.mark.parametrize("prefix_code", [None, "", "  "])
    def test_missing_prefix_is_taken_from_card_number(self, prefix_code: str | None) -> None:
        card = _card(policy_number="hs4-0101-20202-30303", prefix_code=prefix_code)
        assert card.prefix_code == "HS"

    def test_other_providers_skip_bhyt_format(self) -> None:
        card = _card(provider="Private Co", policy_number="ABC-1", prefix_code="PV")
        assert card.policy_number == "ABC-1"

    def test_blank_registration_code_becomes_none(self) -> None:
        assert _card(hospital_registration_code="  ").hospital_registration_code is None

    def test_assignment_is_validated(self) -> None:
        card = _card()
        with pytest.raises(ValueError):
            card.coverage_percent = 150

    def test_expiry_checks_valid_to_and_expiration_date(self) -> None:
        card = _card(expiration_date=date(2024, 6, 30))
        assert not card.is_expired(date(2024, 6, 30))
        assert card.is_expired(date(2024, 7, 1))
        assert not _card().is_expired(date(2024, 12, 31))
        assert _card().is_expired(date(2025, 1, 2))

    def test_calculate_coverage(self) -> None:
        insurance_pays, copay = _card(coverage_percent=80).calculate_coverage(500_000)
        assert insurance_pays == pytest.approx(400_000)
        assert copay == pytest.approx(100_000)

    def test_default_coverage_for_prefix(self) -> None:
        assert default_coverage_for_prefix("te") == 100
        assert default_coverage_for_prefix("TN") == 70
        assert default_coverage_for_prefix("ZZ") is None
