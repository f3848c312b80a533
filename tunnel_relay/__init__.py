"""Exposes a local service to callers behind a cloud relay endpoint."""
