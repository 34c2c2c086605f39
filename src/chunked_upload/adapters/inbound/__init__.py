"""Inbound adapters for the upload engine.

Provides the REST API adapter for chunk ingestion, resume queries and merges.
"""

from chunked_upload.adapters.inbound.rest_api import create_app

__all__ = ["create_app"]
