"""Clinical documentation and payment status updates.

Records, prescriptions and lab orders hang off an appointment the clinician
owns; which appointment states unlock them is fixed below. Every read goes
through the scoped read seam, so a clinician can only document their own
appointments.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

from clinicops.access.context import AccessContext
from clinicops.access.predicates import Entity, FilterPredicate
from clinicops.core.exceptions import (
    AccessDeniedError,
    InvalidTransitionError,
    ValidationError,
)
from clinicops.core.logging import audit_logger
from clinicops.models.billing import PaymentStatus
from clinicops.models.clinical import (
    LabTestPriority,
    LabTestStatus,
    MedicalRecordStatus,
    PrescriptionStatus,
)
from clinicops.models.scheduling import AppointmentStatus
from clinicops.services.notifications import NotificationDispatcher
from clinicops.services.records import ScopedRecordService
from clinicops.store.base import RecordStore
from clinicops.utils.time import utc_now

logger = logging.getLogger(__name__)

# Appointment states that allow each kind of clinical document
RECORD_SOURCE_STATES = frozenset({AppointmentStatus.COMPLETED})
PRESCRIPTION_SOURCE_STATES = frozenset({AppointmentStatus.COMPLETED})
LAB_ORDER_SOURCE_STATES = frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED})

CORRECTABLE_FIELDS = frozenset(
    {"title", "description", "diagnosis", "treatment", "follow_up_instructions"}
)


def _required(value: str | None, name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required")
    return str(value).strip()


class ClinicalRecordService:
    """Creates and updates clinical documents on behalf of a principal."""

    def __init__(
        self,
        store: RecordStore,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.records = ScopedRecordService(store)
        self.clock = clock

    def _require_clinician(self, ctx: AccessContext, action: str) -> None:
        if not ctx.is_clinician:
            raise AccessDeniedError(f"Only clinicians may {action}")

    async def _source_appointment(
        self,
        ctx: AccessContext,
        appointment_id: str,
        allowed: frozenset[AppointmentStatus],
        action: str,
    ) -> Any:
        appointment = await self.records.get(Entity.APPOINTMENT, ctx, appointment_id)
        status = AppointmentStatus(appointment.status)
        if status not in allowed:
            raise InvalidTransitionError(
                f"Cannot {action} for an appointment that is {status.value}",
                current_status=status.value,
            )
        return appointment

    def _audit(self, ctx: AccessContext, action: str, entity_type: str, entity_id: str, **metadata: Any) -> None:
        audit_logger.log(
            action=action,
            actor_type=ctx.actor_type,
            actor_id=ctx.user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata or None,
        )

    # ------------------------------------------------------------------
    # Medical records
    # ------------------------------------------------------------------

    async def create_medical_record(
        self,
        ctx: AccessContext,
        appointment_id: str,
        title: str,
        record_type: str = "consultation",
        description: str | None = None,
        diagnosis: str | None = None,
        treatment: str | None = None,
        follow_up_instructions: str | None = None,
        is_confidential: bool = False,
    ) -> Any:
        """Write a draft record for a completed appointment the clinician owns."""
        self._require_clinician(ctx, "write medical records")
        appointment = await self._source_appointment(
            ctx, appointment_id, RECORD_SOURCE_STATES, "write a medical record"
        )

        record = await self.store.insert(
            Entity.MEDICAL_RECORD,
            {
                "patient_id": appointment.patient_id,
                "clinician_id": appointment.clinician_id,
                "appointment_id": appointment.id,
                "record_type": _required(record_type, "record_type"),
                "title": _required(title, "title"),
                "description": description,
                "diagnosis": diagnosis,
                "treatment": treatment,
                "follow_up_instructions": follow_up_instructions,
                "record_date": self.clock().date(),
                "is_confidential": is_confidential,
                "status": MedicalRecordStatus.DRAFT,
                "revision": 1,
            },
        )
        self._audit(ctx, "medical_record_create", "medical_record", record.id)
        return record

    async def finalize_medical_record(self, ctx: AccessContext, record_id: str) -> Any:
        self._require_clinician(ctx, "finalize medical records")
        record = await self.records.get(Entity.MEDICAL_RECORD, ctx, record_id)
        if record.status != MedicalRecordStatus.DRAFT:
            raise InvalidTransitionError(
                "Medical record is already final", current_status=record.status
            )

        updated = await self.store.update(
            Entity.MEDICAL_RECORD,
            record.id,
            {"status": MedicalRecordStatus.FINAL, "finalized_at": self.clock()},
            expected={"status": MedicalRecordStatus.DRAFT, "revision": record.revision},
        )
        self._audit(ctx, "medical_record_finalize", "medical_record", record.id)
        return updated

    async def correct_medical_record(
        self,
        ctx: AccessContext,
        record_id: str,
        changes: dict[str, Any],
        correction_note: str | None = None,
    ) -> Any:
        """Amend a record. Only the authoring clinician can do this.

        Draft records are edited in place. Final records require a
        correction note and bump ``revision``.
        """
        self._require_clinician(ctx, "correct medical records")
        record = await self.records.get(Entity.MEDICAL_RECORD, ctx, record_id)

        unknown = set(changes) - CORRECTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be corrected: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValidationError("No changes supplied")

        fields = dict(changes)
        if record.status == MedicalRecordStatus.FINAL:
            fields["correction_note"] = _required(correction_note, "correction_note")
            fields["revision"] = record.revision + 1

        updated = await self.store.update(
            Entity.MEDICAL_RECORD,
            record.id,
            fields,
            expected={"status": record.status, "revision": record.revision},
        )
        self._audit(
            ctx,
            "medical_record_correct",
            "medical_record",
            record.id,
            revision=updated.revision,
            fields=sorted(changes),
        )
        return updated

    # ------------------------------------------------------------------
    # Prescriptions and lab tests
    # ------------------------------------------------------------------

    async def create_prescription(
        self,
        ctx: AccessContext,
        appointment_id: str,
        medication_name: str,
        dosage: str,
        frequency: str,
        duration: str,
        instructions: str | None = None,
        refills_allowed: int = 0,
    ) -> Any:
        self._require_clinician(ctx, "prescribe")
        appointment = await self._source_appointment(
            ctx, appointment_id, PRESCRIPTION_SOURCE_STATES, "prescribe"
        )
        if refills_allowed < 0:
            raise ValidationError("refills_allowed cannot be negative")

        prescription = await self.store.insert(
            Entity.PRESCRIPTION,
            {
                "patient_id": appointment.patient_id,
                "clinician_id": appointment.clinician_id,
                "appointment_id": appointment.id,
                "medication_name": _required(medication_name, "medication_name"),
                "dosage": _required(dosage, "dosage"),
                "frequency": _required(frequency, "frequency"),
                "duration": _required(duration, "duration"),
                "instructions": instructions,
                "refills_allowed": refills_allowed,
                "status": PrescriptionStatus.ACTIVE,
                "prescribed_date": self.clock().date(),
            },
        )
        self._audit(ctx, "prescription_create", "prescription", prescription.id)
        return prescription

    async def order_lab_test(
        self,
        ctx: AccessContext,
        appointment_id: str,
        test_name: str,
        test_type: str,
        priority: LabTestPriority = LabTestPriority.ROUTINE,
        test_date: date | None = None,
    ) -> Any:
        self._require_clinician(ctx, "order lab tests")
        appointment = await self._source_appointment(
            ctx, appointment_id, LAB_ORDER_SOURCE_STATES, "order a lab test"
        )

        lab_test = await self.store.insert(
            Entity.LAB_TEST,
            {
                "patient_id": appointment.patient_id,
                "clinician_id": appointment.clinician_id,
                "appointment_id": appointment.id,
                "test_name": _required(test_name, "test_name"),
                "test_type": _required(test_type, "test_type"),
                "test_date": test_date or self.clock().date(),
                "status": LabTestStatus.ORDERED,
                "priority": LabTestPriority(priority),
            },
        )
        self._audit(ctx, "lab_test_order", "lab_test", lab_test.id)
        return lab_test

    async def record_lab_result(
        self,
        ctx: AccessContext,
        lab_test_id: str,
        results: str,
        abnormal_findings: str | None = None,
        normal_ranges: str | None = None,
    ) -> Any:
        """Attach results to an ordered lab test and tell the patient.

        Allowed for the ordering clinician and for staff/admin.
        """
        if ctx.is_patient:
            raise AccessDeniedError("Patients cannot record lab results")
        lab_test = await self.records.get(Entity.LAB_TEST, ctx, lab_test_id)
        if lab_test.status != LabTestStatus.ORDERED:
            raise InvalidTransitionError(
                f"Lab test is {lab_test.status}", current_status=lab_test.status
            )

        updated = await self.store.update(
            Entity.LAB_TEST,
            lab_test.id,
            {
                "results": _required(results, "results"),
                "abnormal_findings": abnormal_findings,
                "normal_ranges": normal_ranges,
                "status": LabTestStatus.COMPLETED,
                "resulted_at": self.clock(),
            },
            expected={"status": LabTestStatus.ORDERED},
        )
        self._audit(ctx, "lab_test_result", "lab_test", lab_test.id)

        patient_user_id = await self._patient_user_id(updated.patient_id)
        await self.dispatcher.lab_results_available(patient_user_id, updated.id, updated.test_name)
        return updated

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def record_payment_status(
        self,
        ctx: AccessContext,
        payment_id: str,
        status: PaymentStatus | str,
        reference: str | None = None,
    ) -> Any:
        """Staff/admin update of a payment's status; the patient is notified."""
        if not ctx.is_staff_or_admin:
            raise AccessDeniedError("Only staff may update payments")
        status = PaymentStatus(status)
        payment = await self.records.get(Entity.PAYMENT, ctx, payment_id)

        fields: dict[str, Any] = {"status": status}
        if reference:
            fields["reference"] = reference
        updated = await self.store.update(Entity.PAYMENT, payment.id, fields)
        self._audit(
            ctx, "payment_status", "payment", payment.id, status=status.value
        )

        patient_user_id = await self._patient_user_id(updated.patient_id)
        await self.dispatcher.payment_status_changed(
            patient_user_id,
            updated.appointment_id,
            status,
            updated.amount,
            updated.currency,
        )
        return updated

    async def _patient_user_id(self, patient_id: str) -> str | None:
        try:
            patient = await self.store.find_one(Entity.PATIENT, FilterPredicate.where(id=patient_id))
        except Exception as e:
            logger.error(f"Could not resolve patient {patient_id} for notification: {e}")
            return None
        return patient.user_id if patient else None
