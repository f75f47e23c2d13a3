"""Onboarding Schemas — responses from the external onboarding service."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class VerificationCodeResponse(BaseModel):
    """POST /api/onboarding/verify?phone= response."""
    code: str | None = None


class GroupCreationResult(BaseModel):
    """POST /api/onboarding response."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore",
    )

    group_id: int | str | None = None
    invite_link: str | None = None
    status: str | None = None
