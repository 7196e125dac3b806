"""FastAPI routers for the worker.

Routers are grouped by domain (process, sessions, transcribe, calendar, config).
"""
