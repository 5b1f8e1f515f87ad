from .settings import (
    AutomationSettings,
    DatabaseSettings,
    ReviewSettings,
    Settings,
    SMSSettings,
    SMTPSettings,
    get_settings,
)

__all__ = [
    "AutomationSettings",
    "DatabaseSettings",
    "ReviewSettings",
    "Settings",
    "SMSSettings",
    "SMTPSettings",
    "get_settings",
]
