"""
Storefront theme backend.

This package provides a FastAPI application with storage, database and
cache abstractions for multi-tenant stores: theme draft/publish with live
preview, signed asset uploads, and the store catalog.
"""
