"""Room domain services: estimation, timers, catalog and team defaults.

This package contains domain logic that is imported by HTTP routes and
socket handlers, keeping transport concerns separated from the room
mechanics.
"""
