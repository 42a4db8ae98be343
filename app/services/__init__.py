"""Clients and orchestration services used by the HTTP routes."""
