"""Schema baselines shared by request, response and webhook DTOs."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Neutral strict base for response DTOs."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class StrictRequestModel(StrictModel):
    """Request DTO base that always forbids unexpected fields."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class ProviderPayload(BaseModel):
    """Webhook payloads: providers add fields freely, so extras are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)
