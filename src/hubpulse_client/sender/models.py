"""Pydantic models for Event Hub credentials."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EventHubCredentials(BaseModel):
    """Identity used to publish to an Event Hub as a single device."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True, extra="forbid")

    device_name: str = Field(..., min_length=1, description="Publisher identifier used in the endpoint path")
    service_namespace: str = Field(..., pattern=r"^[A-Za-z][A-Za-z0-9-]{0,48}[A-Za-z0-9]$", description="Service Bus namespace")
    hub_name: str = Field(..., min_length=1, description="Event Hub name")
    key_name: str = Field(..., min_length=1, description="Shared access authorization rule name")
    key_value: str = Field(..., min_length=1, repr=False, description="Shared access authorization rule key")

    @property
    def resource_uri(self) -> str:
        """Publisher endpoint the SAS token is scoped to."""
        return f"https://{self.service_namespace}.servicebus.windows.net/{self.hub_name}/publishers/{self.device_name}/messages"
