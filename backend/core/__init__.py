"""Core outcome reconciliation logic and models.

This package contains pure business logic with no I/O dependencies
(no database, Redis, or network access). Storage is reached only through
the protocols in ``core.store_protocol``, implemented by ``app.storage``
in the service and by in-memory fakes in the tests.
"""
