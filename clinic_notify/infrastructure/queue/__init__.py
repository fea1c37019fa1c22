"""Delivery queue and its background worker."""

from .delivery_queue import Clock, DeliveryQueue
from .worker import QueueWorker, RetryPolicy

__all__ = ["Clock", "DeliveryQueue", "QueueWorker", "RetryPolicy"]
