"""Downstream application notifier."""

from gateway.notifier.client import DownstreamNotifier, WebhookReply

__all__ = ["DownstreamNotifier", "WebhookReply"]
