"""Patient roster and own-profile endpoints."""

from datetime import date

from fastapi import APIRouter
from pydantic import BaseModel

from clinicops.api.deps import CurrentContext, Records
from clinicops.api.v1.records import serialize

router = APIRouter()


class PatientResponse(BaseModel):
    """Patient roster entry."""

    id: str
    user_id: str
    date_of_birth: date | None
    gender: str | None
    blood_type: str | None
    allergies: str | None

    class Config:
        from_attributes = True


@router.get(
    "",
    response_model=list[PatientResponse],
)
async def patient_roster(
    ctx: CurrentContext,
    records: Records,
) -> list[PatientResponse]:
    """Patients visible to the caller.

    Clinicians see patients they have appointments with; staff see all.
    """
    patients = await records.patient_roster(ctx)
    return [PatientResponse.model_validate(p) for p in patients]


@router.get("/me")
async def own_profile(
    ctx: CurrentContext,
    records: Records,
) -> dict:
    """The caller's own patient, clinician or staff profile."""
    profile = await records.own_profile(ctx)
    return {"role": ctx.role.value, "profile": serialize(profile)}
