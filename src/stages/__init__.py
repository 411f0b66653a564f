"""Platform stage pipelines and registry."""

from typing import Iterable

from stages.base import Stage, validate_stages


# Registry of platform pipelines, filled at import time
_platforms: dict[str, tuple[Stage, ...]] = {}


def register_platform(stages: Iterable[Stage]) -> tuple[Stage, ...]:
    """Validate and register a platform's ordered stages."""
    pipeline = validate_stages(stages)
    platform = pipeline[0].platform
    if platform in _platforms:
        raise ValueError(f"platform '{platform}' is already registered")
    _platforms[platform] = pipeline
    return pipeline


def get_platform_stages(platform: str) -> tuple[Stage, ...]:
    """Get the ordered stages for a platform."""
    if platform not in _platforms:
        available = list_platforms()
        raise ValueError(f"Unknown platform: {platform}. Available: {available}")
    return _platforms[platform]


def list_platforms() -> list[str]:
    """List registered platform names."""
    return sorted(_platforms.keys())


# Import platforms to trigger registration
from stages import aws  # noqa: E402, F401
from stages import gcp  # noqa: E402, F401
from stages import ibmcloud  # noqa: E402, F401
