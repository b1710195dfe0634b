"""Core application for the HealthLink backend.

This package contains the auth core (token codec, refresh-token ledger,
credential store and the auth orchestrator), its models and the REST
endpoints exposing it.
"""
