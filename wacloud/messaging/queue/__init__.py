"""Outbound delivery queue."""

from .outbound_queue import OutboundDeliveryWorker, OutboundQueue

__all__ = ["OutboundDeliveryWorker", "OutboundQueue"]
