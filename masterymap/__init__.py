"""
MasteryMap server core.

Application package root for the competency-based project learning
platform's API server.

Layers:
    - core: Settings.
    - infrastructure: Pooled database connections, transactions, retry.
    - interfaces: FastAPI routers and Pydantic schemas.
    - shared: Cross-cutting concerns (error taxonomy and handlers,
      security, logging).
"""
