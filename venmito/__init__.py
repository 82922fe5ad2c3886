"""Venmito admin backend: bulk ingestion and reconciliation of customer data."""
