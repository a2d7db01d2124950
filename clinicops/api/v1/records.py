"""Clinical record endpoints.

Generic scoped reads for every clinical entity, plus the write operations of
``ClinicalRecordService``.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from clinicops.access.predicates import Entity
from clinicops.api.deps import Clinical, CurrentContext, Records
from clinicops.models.billing import PaymentStatus
from clinicops.models.clinical import LabTestPriority

router = APIRouter()


class RecordEntity(str, Enum):
    """Entities readable through ``/records/{entity}``."""

    MEDICAL_RECORD = "medical_record"
    LAB_TEST = "lab_test"
    PRESCRIPTION = "prescription"
    PAYMENT = "payment"
    SCHEDULE = "schedule"
    TASK = "task"


def serialize(row: Any) -> dict[str, Any]:
    """Column values of an ORM row as JSON-friendly values."""
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if isinstance(value, Decimal):
            value = str(value)
        elif hasattr(value, "isoformat"):
            value = value.isoformat()
        data[column.key] = value
    return data


# ============================================================================
# Request Schemas
# ============================================================================


class CreateMedicalRecordRequest(BaseModel):
    """Request to write a medical record for a completed appointment."""

    appointment_id: str
    title: str = Field(min_length=1, max_length=255)
    record_type: str = "consultation"
    description: str | None = None
    diagnosis: str | None = None
    treatment: str | None = None
    follow_up_instructions: str | None = None
    is_confidential: bool = False


class CorrectMedicalRecordRequest(BaseModel):
    """Changes to a medical record; final records need a correction note."""

    title: str | None = None
    description: str | None = None
    diagnosis: str | None = None
    treatment: str | None = None
    follow_up_instructions: str | None = None
    correction_note: str | None = None


class CreatePrescriptionRequest(BaseModel):
    appointment_id: str
    medication_name: str
    dosage: str
    frequency: str
    duration: str
    instructions: str | None = None
    refills_allowed: int = Field(0, ge=0)


class OrderLabTestRequest(BaseModel):
    appointment_id: str
    test_name: str
    test_type: str
    priority: LabTestPriority = LabTestPriority.ROUTINE
    test_date: date | None = None


class LabResultRequest(BaseModel):
    results: str
    abnormal_findings: str | None = None
    normal_ranges: str | None = None


class PaymentStatusRequest(BaseModel):
    status: PaymentStatus
    reference: str | None = None


# ============================================================================
# Writes
# ============================================================================


@router.post("/medical-records", status_code=status.HTTP_201_CREATED)
async def create_medical_record(
    request: CreateMedicalRecordRequest,
    ctx: CurrentContext,
    service: Clinical,
) -> dict:
    """Write a draft medical record."""
    record = await service.create_medical_record(ctx, **request.model_dump())
    return serialize(record)


@router.post("/medical-records/{record_id}/finalize")
async def finalize_medical_record(
    record_id: str,
    ctx: CurrentContext,
    service: Clinical,
) -> dict:
    """Finalize a draft medical record."""
    record = await service.finalize_medical_record(ctx, record_id)
    return serialize(record)


@router.patch("/medical-records/{record_id}")
async def correct_medical_record(
    record_id: str,
    request: CorrectMedicalRecordRequest,
    ctx: CurrentContext,
    service: Clinical,
) -> dict:
    """Edit a draft or correct a final medical record."""
    changes = request.model_dump(exclude_unset=True, exclude={"correction_note"})
    record = await service.correct_medical_record(
        ctx, record_id, changes, correction_note=request.correction_note
    )
    return serialize(record)


@router.post("/prescriptions", status_code=status.HTTP_201_CREATED)
async def create_prescription(
    request: CreatePrescriptionRequest,
    ctx: CurrentContext,
    service: Clinical,
) -> dict:
    prescription = await service.create_prescription(ctx, **request.model_dump())
    return serialize(prescription)


@router.post("/lab-tests", status_code=status.HTTP_201_CREATED)
async def order_lab_test(
    request: OrderLabTestRequest,
    ctx: CurrentContext,
    service: Clinical,
) -> dict:
    lab_test = await service.order_lab_test(ctx, **request.model_dump())
    return serialize(lab_test)


@router.post("/lab-tests/{lab_test_id}/results")
async def record_lab_result(
    lab_test_id: str,
    request: LabResultRequest,
    ctx: CurrentContext,
    service: Clinical,
) -> dict:
    """Attach results to an ordered lab test."""
    lab_test = await service.record_lab_result(ctx, lab_test_id, **request.model_dump())
    return serialize(lab_test)


@router.post("/payments/{payment_id}/status")
async def record_payment_status(
    payment_id: str,
    request: PaymentStatusRequest,
    ctx: CurrentContext,
    service: Clinical,
) -> dict:
    """Update a payment's status (staff/admin)."""
    payment = await service.record_payment_status(
        ctx, payment_id, request.status, reference=request.reference
    )
    return serialize(payment)


# ============================================================================
# Scoped reads
# ============================================================================


@router.get("/{entity}")
async def list_records(
    entity: RecordEntity,
    ctx: CurrentContext,
    records: Records,
    limit: int = Query(100, ge=1, le=500),
) -> list[dict]:
    """List rows of a clinical entity visible to the caller."""
    rows = await records.find(
        Entity(entity.value), ctx, order_by="-created_at", limit=limit
    )
    return [serialize(row) for row in rows]


@router.get("/{entity}/{record_id}")
async def get_record(
    entity: RecordEntity,
    record_id: str,
    ctx: CurrentContext,
    records: Records,
) -> dict:
    """Get one row; rows outside the caller's scope are reported as missing."""
    row = await records.get(Entity(entity.value), ctx, record_id)
    return serialize(row)
