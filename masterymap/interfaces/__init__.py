"""
Interfaces layer package.

Contains FastAPI routers, Pydantic response schemas and the
dependencies that hand infrastructure objects to routes.
No business logic belongs here.
"""
