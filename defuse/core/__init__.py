"""Core session primitives (clock, events, session context, payload validation).

Kept free of FastAPI and redis concerns so it can be reused by API routes, the driving loop, and tests.
"""
