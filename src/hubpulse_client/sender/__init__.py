"""Transport module for delivering serialized batches."""

from .eventhub_sender import EventHubSender, SasToken, SenderConfig, create_default_sender, generate_sas_token
from .log_sender import LogSender
from .models import EventHubCredentials
from .transport import CREATED, Transport, is_delivered

__all__ = [
    "Transport",
    "CREATED",
    "is_delivered",
    "EventHubSender",
    "EventHubCredentials",
    "SenderConfig",
    "SasToken",
    "generate_sas_token",
    "create_default_sender",
    "LogSender",
]
