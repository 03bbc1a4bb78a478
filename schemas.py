from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class EmailNormalizingModel(BaseModel):
    @field_validator("email", mode="before", check_fields=False)
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class RegisterRequest(EmailNormalizingModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=2)
    last_name: str = Field(min_length=2)


class LoginRequest(EmailNormalizingModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1)


class CreateProjectRequest(BaseModel):
    name: str = Field(min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: Literal["SINGLE", "ORGANIZATION"]


class UpdateProjectRequest(BaseModel):
    name: str = Field(min_length=3, max_length=100)
    description: str = Field(min_length=1, max_length=500)


class InviteUserRequest(EmailNormalizingModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    role: Literal["ADMIN", "MEMBER"] = "MEMBER"


class AcceptInvitationRequest(BaseModel):
    token: str = Field(min_length=1)


class ChartRequest(BaseModel):
    """
    Chart creation/update payload.

    ``chart_type`` stays a plain string here and is decoded into a ChartKind
    by the chart service, which rejects unknown kinds.
    """
    x_axis: str = Field(min_length=1)
    y_axis: str = Field(min_length=1)
    chart_type: str
    title: Optional[str] = None
    styling: Optional[Dict[str, Any]] = None
