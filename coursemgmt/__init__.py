"""Application package for the university course management backend.

This package exposes the service, repository and model modules used by
the FastAPI application in `coursemgmt.main`. Individual modules contain
the concrete implementations and documentation.
"""
