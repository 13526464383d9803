"""Retrieval-augmented orchestration core for the document-editing assistant."""
