from .config import AutoscalerConfig, ScalingPolicy
from .controller import AutoscalerController, desired_replicas

__all__ = ["AutoscalerConfig", "AutoscalerController", "ScalingPolicy", "desired_replicas"]
