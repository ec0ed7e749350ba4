from pydantic import BaseModel, Field
from app.core.security import SessionUser

class FhirUserData(BaseModel):
    # Produced by the SMART-on-FHIR launch once the practitioner is authorized.
    practitioner_id: str = Field(..., min_length=1)
    name: str | None = None
    fhir_base_url: str
    access_token: str
    patient_id: str | None = None
    patient_name: str | None = None
    encounter_id: str | None = None

class SessionOut(BaseModel):
    user: SessionUser | None

class MeOut(BaseModel):
    id: str
    practitioner_id: str
    practitioner_name: str | None
    patient_id: str | None
    patient_name: str | None
    fhir_base_url: str
