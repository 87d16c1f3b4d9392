"""Base model configuration for runner settings."""

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Base model with standard configuration. Unknown keys are rejected."""

    model_config = ConfigDict(frozen=True, extra="forbid")
