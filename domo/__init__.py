"""Domo webhook service: Tavus webhook ingestion and tool-call dispatch."""
