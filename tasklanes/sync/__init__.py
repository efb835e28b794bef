"""Synchronization between a document store and the signed-in user's tasks."""
