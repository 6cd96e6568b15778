"""Webhook HTTP surface."""
