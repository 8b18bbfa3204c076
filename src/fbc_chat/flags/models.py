from enum import Enum

from pydantic import BaseModel, Field


class MigrationPhase(str, Enum):
    """Rollout phase derived from the resolved flags."""

    LEGACY = "legacy"    # Legacy pipeline only
    HYBRID = "hybrid"    # Some native features enabled
    NATIVE = "native"    # Native SDK, tools and store all enabled


class MigrationFlags(BaseModel):
    """Feature flags controlling the rollout of the native SDK pipeline."""

    # Core migration flags
    use_native_sdk: bool = False
    use_enhanced_metadata: bool = True
    use_native_tools: bool = False
    use_dedicated_store: bool = False

    # Rollout controls
    enable_for_admins: bool = True
    enable_for_users: bool = False
    enable_for_specific_sessions: list[str] = Field(default_factory=list)

    # Fallback controls
    fallback_to_legacy: bool = True
    fallback_threshold: float = Field(default=0.1, ge=0.0, le=1.0, description="Error rate that triggers fallback")

    # Monitoring
    enable_performance_monitoring: bool = True
    enable_debug_logging: bool = False


class Rollout(BaseModel):
    admins: bool
    users: bool
    sessions: list[str]


class MigrationStatus(BaseModel):
    """Summary of the resolved flags for monitoring."""

    phase: MigrationPhase
    features: list[str]
    rollout: Rollout
