"""
Backend package for the photo service.

This package provides a FastAPI application that exposes the crop, optimize
and upload pipeline over HTTP, with document store, object storage, identity
and lock abstractions that have in-memory and production implementations.
"""
