"""
Ingestion: load CRM exports, render records as text, embed and index them.

This module is responsible for the pipeline that turns raw CRM exports
(customers, quotes, work history) into formatted, embedded records stored
in the vector database.  The entry point is
:class:`crm_rag.ingestion.orchestrator.IngestionOrchestrator`.
"""
