"""
FastAPI dependency injection for the email analytics API.

Endpoints never import the settings singleton directly; they declare a
``SettingsDep`` parameter so tests can swap thresholds through
``app.dependency_overrides``.

Usage:
    @router.post("/send-volume")
    async def send_volume(request: AnalysisRequest, settings: SettingsDep):
        ...
"""

from typing import Annotated

from fastapi import Depends

from email_analytics.core.config import Settings, get_settings


def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Returns:
        Settings: The cached Settings instance with all thresholds.
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]
