"""Outbound messaging: REST client, messenger and delivery queue."""
