"""Exceptions raised by the outcome pipeline."""


class ReconciliationError(Exception):
    """A store query failed and the investigation was aborted before any write."""
