from pydantic import BaseModel, Field
from typing import Optional


class DoctorRegistrationRequest(BaseModel):
    display_name: str = Field(min_length=1)
    specialty: Optional[str] = None
