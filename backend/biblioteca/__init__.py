"""Application package for the library catalog backend.

This package exposes the service, repository, security and model
modules used by the FastAPI application. Individual modules contain the
concrete implementations and documentation.
"""
