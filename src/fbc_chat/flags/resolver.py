"""Layered feature-flag resolution.

Flags resolve in this order, later layers winning:
defaults -> environment -> session overrides -> user overrides -> admin.

Overrides live on the resolver instance, so tests and concurrent callers
never see each other's changes.
"""

import logging
import os
from collections.abc import Mapping
from typing import Any

from .models import MigrationFlags, MigrationPhase, MigrationStatus, Rollout

logger = logging.getLogger(__name__)

DEFAULT_SESSION_OVERRIDES: dict[str, dict[str, Any]] = {
    "test-native-ai-sdk": {
        "use_native_sdk": True,
        "use_enhanced_metadata": True,
        "use_native_tools": True,
        "enable_debug_logging": True,
    },
    "test-enhanced-metadata": {
        "use_enhanced_metadata": True,
        "enable_debug_logging": True,
    },
    "test-fallback": {
        "use_native_sdk": True,
        "fallback_to_legacy": True,
        "fallback_threshold": 0.05,
    },
}

DEFAULT_USER_OVERRIDES: dict[str, dict[str, Any]] = {
    "admin@fbc.com": {
        "use_native_sdk": True,
        "use_enhanced_metadata": True,
        "use_native_tools": True,
        "enable_debug_logging": True,
    },
    "beta@fbc.com": {
        "use_native_sdk": True,
        "use_enhanced_metadata": True,
        "enable_debug_logging": True,
    },
}

ADMIN_OVERRIDES: dict[str, Any] = {
    "enable_for_admins": True,
    "use_enhanced_metadata": True,
    "enable_debug_logging": True,
}


def env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    """Flag overrides derived from environment variables.

    Environment variables:
        NODE_ENV: 'development' enables debug logging
        ENABLE_NATIVE_AI_SDK: 'true' enables the native SDK in development
        ENABLE_AI_SDK_FOR_ADMINS: 'false' disables the admin rollout
        ENABLE_AI_SDK_FOR_USERS: 'true' enables the user rollout
    """
    development = env.get("NODE_ENV") == "development"
    return {
        "use_native_sdk": development and env.get("ENABLE_NATIVE_AI_SDK") == "true",
        "enable_for_admins": env.get("ENABLE_AI_SDK_FOR_ADMINS") != "false",
        "enable_for_users": env.get("ENABLE_AI_SDK_FOR_USERS") == "true",
        "enable_debug_logging": development,
    }


class FlagResolver:
    """Resolves MigrationFlags for a (session, user, admin) triple."""

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        defaults: MigrationFlags | None = None,
        session_overrides: Mapping[str, dict[str, Any]] | None = None,
        user_overrides: Mapping[str, dict[str, Any]] | None = None,
    ):
        self._env = os.environ if env is None else env
        self._defaults = defaults or MigrationFlags()
        self._session_overrides = {
            k: dict(v) for k, v in (session_overrides or DEFAULT_SESSION_OVERRIDES).items()
        }
        self._user_overrides = {
            k: dict(v) for k, v in (user_overrides or DEFAULT_USER_OVERRIDES).items()
        }

    def resolve(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        is_admin: bool = False,
    ) -> MigrationFlags:
        layers: list[dict[str, Any]] = [env_overrides(self._env)]
        if session_id and session_id in self._session_overrides:
            layers.append(self._session_overrides[session_id])
        if user_id and user_id in self._user_overrides:
            layers.append(self._user_overrides[user_id])
        if is_admin:
            layers.append(ADMIN_OVERRIDES)

        merged = self._defaults.model_dump()
        for layer in layers:
            merged.update(layer)
        return MigrationFlags.model_validate(merged)

    def should_use_native_sdk(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        is_admin: bool = False,
    ) -> bool:
        """Whether the native SDK pipeline should serve this request.

        The audience (admins or users) must be enabled first; an explicitly
        listed session then always qualifies.
        """
        flags = self.resolve(session_id, user_id, is_admin)
        if is_admin and not flags.enable_for_admins:
            return False
        if not is_admin and not flags.enable_for_users:
            return False
        if session_id and session_id in flags.enable_for_specific_sessions:
            return True
        return flags.use_native_sdk

    def should_use_enhanced_metadata(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        is_admin: bool = False,
    ) -> bool:
        return self.resolve(session_id, user_id, is_admin).use_enhanced_metadata

    def should_use_native_tools(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        is_admin: bool = False,
    ) -> bool:
        return self.resolve(session_id, user_id, is_admin).use_native_tools

    def should_use_dedicated_store(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        is_admin: bool = False,
    ) -> bool:
        return self.resolve(session_id, user_id, is_admin).use_dedicated_store

    def should_fallback_to_legacy(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        is_admin: bool = False,
    ) -> bool:
        return self.resolve(session_id, user_id, is_admin).fallback_to_legacy

    def fallback_threshold(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        is_admin: bool = False,
    ) -> float:
        return self.resolve(session_id, user_id, is_admin).fallback_threshold

    def should_enable_performance_monitoring(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        is_admin: bool = False,
    ) -> bool:
        return self.resolve(session_id, user_id, is_admin).enable_performance_monitoring

    def should_enable_debug_logging(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        is_admin: bool = False,
    ) -> bool:
        return self.resolve(session_id, user_id, is_admin).enable_debug_logging

    def update_session_flags(self, session_id: str, **updates: Any) -> None:
        """Merge overrides for one session.

        Raises:
            ValueError: If an update names an unknown flag
        """
        unknown = set(updates) - set(MigrationFlags.model_fields)
        if unknown:
            raise ValueError(f"Unknown flags: {', '.join(sorted(unknown))}")
        self._session_overrides.setdefault(session_id, {}).update(updates)
        logger.debug("Updated flags for session %s: %s", session_id, updates)

    def clear_session_flags(self, session_id: str) -> None:
        self._session_overrides.pop(session_id, None)

    def migration_status(
        self,
        session_id: str | None = None,
        user_id: str | None = None,
        is_admin: bool = False,
    ) -> MigrationStatus:
        flags = self.resolve(session_id, user_id, is_admin)

        if flags.use_native_sdk and flags.use_native_tools and flags.use_dedicated_store:
            phase = MigrationPhase.NATIVE
        elif flags.use_enhanced_metadata or flags.use_native_sdk:
            phase = MigrationPhase.HYBRID
        else:
            phase = MigrationPhase.LEGACY

        feature_names = [
            ("use_native_sdk", "native-ai-sdk"),
            ("use_enhanced_metadata", "enhanced-metadata"),
            ("use_native_tools", "native-tools"),
            ("use_dedicated_store", "dedicated-store"),
            ("enable_performance_monitoring", "performance-monitoring"),
            ("enable_debug_logging", "debug-logging"),
        ]
        features = [name for field, name in feature_names if getattr(flags, field)]

        return MigrationStatus(
            phase=phase,
            features=features,
            rollout=Rollout(
                admins=flags.enable_for_admins,
                users=flags.enable_for_users,
                sessions=flags.enable_for_specific_sessions,
            ),
        )
