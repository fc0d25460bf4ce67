"""
Serving: FastAPI application exposing ingestion and querying over HTTP.
"""
