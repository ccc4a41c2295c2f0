"""
Core infrastructure package for the email analytics engine.

Provides:
- Threshold configuration via pydantic-settings
- FastAPI dependency injection utilities

Usage:
    from email_analytics.core import get_settings, SettingsDep
"""

# =============================================================================
# Re-exports from email_analytics.core.config
# =============================================================================
from email_analytics.core.config import Settings, get_settings

# =============================================================================
# Re-exports from email_analytics.core.dependencies
# =============================================================================
from email_analytics.core.dependencies import (
    get_settings_dependency,
    SettingsDep,
)

__all__ = [
    'Settings',
    'get_settings',
    'get_settings_dependency',
    'SettingsDep',
]
