"""API Layer — HTTP middleware, routes and error handlers.

Invariants:
    - Routes registered explicitly in main.py and router.py (no auto-discovery)
    - All responses, including failures, are structured JSON

Design Decisions:
    - One formatter (error_handlers.py) for every failure the framework can surface
"""
