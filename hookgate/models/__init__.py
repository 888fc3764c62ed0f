"""Data models for the webhook gateway."""

from .build_params import (
    BuildParams,
    CommitPaths,
    EnvironmentItem,
    PullRequestReadyState,
    SkipResponse,
    TriggerParams,
    TriggerResponse,
)
from .transform import HookResponse, ResponseInput, TransformResult

__all__ = [
    # Canonical trigger models
    "BuildParams",
    "CommitPaths",
    "EnvironmentItem",
    "PullRequestReadyState",
    "TriggerParams",
    # Downstream and response models
    "TriggerResponse",
    "SkipResponse",
    "ResponseInput",
    "HookResponse",
    # Transformation
    "TransformResult",
]
