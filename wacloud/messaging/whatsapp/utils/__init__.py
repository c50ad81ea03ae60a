"""Shared helpers for the WhatsApp messaging layer."""
