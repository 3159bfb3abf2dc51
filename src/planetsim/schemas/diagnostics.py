from pydantic import BaseModel, ConfigDict, Field


class DiagnosticsConfig(BaseModel):
    """Configuration for per-tick field diagnostics and health checks."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    log_every_n_steps: int = Field(60, gt=0)
    check_nan_inf: bool = True
    strict: bool = False
    thresholds: dict[str, float] = Field(default_factory=dict)
