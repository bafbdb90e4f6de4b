"""
Autoscaler configuration.

Loaded from the JSON file named by AUTOSCALER_CONFIG:

    {
      "scaler_url": "http://orchestrator:9000",
      "services": {
        "orders": {
          "usage_url": "http://orders:8000/usage",
          "min_replicas": 2, "max_replicas": 8,
          "cpu_high_watermark": 75, "cpu_low_watermark": 25,
          "poll_interval": 15
        }
      }
    }
"""

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ScalingPolicy(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    min_replicas: int = Field(1, ge=0)
    max_replicas: int = Field(1, ge=1)
    cpu_high_watermark: float = Field(80.0, gt=0)
    cpu_low_watermark: float = Field(20.0, ge=0)
    poll_interval: float = Field(30.0, gt=0)
    initial_replicas: int | None = None
    usage_url: str | None = None

    @model_validator(mode="after")
    def check_bounds(self) -> "ScalingPolicy":
        if self.min_replicas > self.max_replicas:
            raise ValueError("min_replicas must not exceed max_replicas")
        if self.cpu_low_watermark >= self.cpu_high_watermark:
            raise ValueError("cpu_low_watermark must be below cpu_high_watermark")
        return self

    @property
    def target_utilization(self) -> float:
        return (self.cpu_high_watermark + self.cpu_low_watermark) / 2

    def clamp(self, replicas: int) -> int:
        return max(self.min_replicas, min(self.max_replicas, replicas))

    def starting_replicas(self) -> int:
        if self.initial_replicas is None:
            return self.min_replicas
        return self.clamp(self.initial_replicas)


class AutoscalerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    scaler_url: str | None = None
    services: dict[str, ScalingPolicy]

    @classmethod
    def load(cls, path: str | os.PathLike | None = None) -> "AutoscalerConfig":
        path = path or os.environ.get("AUTOSCALER_CONFIG", "autoscaler.json")
        return cls.model_validate_json(Path(path).read_text())
