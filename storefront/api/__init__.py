"""API layer module.

Contains FastAPI routers, request/response schemas, dependencies
and middleware.
"""
