"""Feature flags for the native SDK migration."""

from .models import MigrationFlags, MigrationPhase, MigrationStatus, Rollout
from .resolver import FlagResolver, env_overrides

__all__ = [
    "FlagResolver",
    "MigrationFlags",
    "MigrationPhase",
    "MigrationStatus",
    "Rollout",
    "env_overrides",
]
