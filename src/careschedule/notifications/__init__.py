"""
CareSchedule Change Publishers

Delivery channels for committed schedule changes.
"""
from .base_publisher import BasePublisher, PublishResult
from .webhook_publisher import WebhookPublisher

__all__ = [
    'BasePublisher',
    'PublishResult',
    'WebhookPublisher',
]
