"""
Save and delete flows behind the clinical forms.

Unlike resolution, nothing here degrades silently: invalid input raises
ValidationError so the form can reject it before anything is persisted,
and a failing store raises StoreError.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from clinical.domain.errors import NotFoundError, ValidationError
from clinical.domain.models import AnyRecord, InsuranceCard, Measurement
from clinical.services.record_resolver import FormSession
from clinical.services.record_store import LocalRecordStore, logger

ModelT = TypeVar("ModelT", bound=BaseModel)


def build_record(model: type[ModelT], payload: Mapping[str, Any]) -> ModelT:
    """Validate form data into a domain model, translating pydantic errors."""
    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as e:
        messages = []
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"]) or "record"
            messages.append(f"{location}: {error['msg']}")
        raise ValidationError(messages) from e


class RecordEditor:
    """Persists form submissions for insurance cards and measurements."""

    def __init__(self, store: LocalRecordStore) -> None:
        self.store = store
        self.logger = logger.bind(component="record_editor")

    async def _save(self, record: AnyRecord) -> AnyRecord:
        result = await self.store.save(record)
        if result.is_err():
            error = result.unwrap_err()
            self.logger.error(
                "record_save_failed", record_id=record.id, kind=record.kind, error=str(error)
            )
            raise error
        return result.unwrap()

    async def save_insurance_card(
        self,
        patient_id: str,
        data: Mapping[str, Any],
        existing: InsuranceCard | None = None,
    ) -> InsuranceCard:
        """
        Insert a new card, or update ``existing`` in place by id.

        An update only overwrites the fields present in ``data``. Changing the
        card number clears verification and re-derives the prefix code unless
        one is supplied.
        """
        changes = {k: v for k, v in data.items() if k not in {"id", "kind", "created_at"}}

        if existing is None:
            payload = changes
        else:
            if existing.patient_id != patient_id:
                raise ValidationError(["patient_id: cannot move a card to another patient"])
            payload = existing.model_dump()
            payload.update(changes)

            new_number = changes.get("policy_number")
            if isinstance(new_number, str) and new_number.strip().upper() != existing.policy_number:
                payload["is_verified"] = False
                if "prefix_code" not in changes:
                    payload.pop("prefix_code")

        payload["patient_id"] = patient_id
        payload["updated_at"] = datetime.now(UTC)

        card = build_record(InsuranceCard, payload)
        saved = await self._save(card)

        self.logger.info(
            "insurance_card_saved",
            card_id=saved.id,
            patient_id=patient_id,
            updated=existing is not None,
        )
        return saved  # type: ignore[return-value]

    async def submit_card(
        self, session: FormSession, patient_id: str, data: Mapping[str, Any]
    ) -> InsuranceCard:
        """Save callback for a card form: update when editing, insert otherwise."""
        existing = session.state.record if session.state.is_editing else None
        if existing is not None and not isinstance(existing, InsuranceCard):
            raise ValidationError(["record: form is not editing an insurance card"])

        card = await self.save_insurance_card(patient_id, data, existing)
        session.mark_saved(card)
        return card

    async def delete_insurance_card(self, card_id: str) -> InsuranceCard:
        found = await self.store.find(card_id)
        if found.is_err():
            raise found.unwrap_err()
        if not isinstance(found.unwrap(), InsuranceCard):
            raise NotFoundError(card_id)

        deleted = await self.store.delete(card_id)
        if deleted.is_err():
            raise deleted.unwrap_err()

        self.logger.info("insurance_card_deleted", card_id=card_id)
        return deleted.unwrap()  # type: ignore[return-value]

    async def record_measurement(self, patient_id: str, data: Mapping[str, Any]) -> Measurement:
        """Append a new measurement. A new fact always gets a fresh id."""
        payload = {k: v for k, v in data.items() if k not in {"id", "kind"}}
        payload["patient_id"] = patient_id

        measurement = build_record(Measurement, payload)
        saved = await self._save(measurement)

        self.logger.info(
            "measurement_recorded",
            measurement_id=saved.id,
            patient_id=patient_id,
            type=measurement.type.value,
            target=measurement.target,
        )
        return saved  # type: ignore[return-value]

    async def record_correction(
        self, original: Measurement, data: Mapping[str, Any]
    ) -> Measurement:
        """
        Append a corrected reading for the same group as ``original``.

        The original stays in the store untouched. The correction takes its
        place in the history: it keeps the original's timestamp and names it
        in ``corrects_id``, so aggregation drops the superseded reading.
        """
        payload: dict[str, Any] = {
            "recorded_by": original.recorded_by,
            "visit_id": original.visit_id,
            "notes": f"Correction of {original.id}",
        }
        payload.update({k: v for k, v in data.items() if k in {"value", "notes", "recorded_by"}})
        payload.update(
            {
                "type": original.type,
                "target": original.target,
                "side": original.side,
                "recorded_at": original.recorded_at,
                "corrects_id": original.id,
            }
        )

        correction = await self.record_measurement(original.patient_id, payload)
        self.logger.info(
            "measurement_corrected", original_id=original.id, correction_id=correction.id
        )
        return correction
