"""Routers mounted by :func:`shell_relay.api.main.create_app`."""
