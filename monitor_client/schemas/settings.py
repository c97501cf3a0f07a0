from __future__ import annotations

from pydantic import Field

from monitor_client.schemas.common import EntityModel


class Settings(EntityModel):
    """Process-wide monitoring settings; always fetched and saved as a whole."""

    check_interval: int = Field(300, ge=1, description="Health-check interval (seconds).", alias="checkInterval")
    alert_threshold: int = Field(
        3, ge=1, description="Consecutive failed checks before an alert is raised.", alias="alertThreshold"
    )

    enable_notifications: bool = Field(True, alias="enableNotifications")
    enable_email_alerts: bool = Field(True, alias="enableEmailAlerts")
    enable_sms_alerts: bool = Field(True, alias="enableSMSAlerts")

    smtp_server: str = Field("", alias="smtpServer")
    smtp_port: int = Field(587, ge=1, le=65535, alias="smtpPort")
    smtp_username: str = Field("", alias="smtpUsername")
    smtp_password: str = Field("", alias="smtpPassword", repr=False)
