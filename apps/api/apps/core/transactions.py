"""
Explicit transaction runner.

Services that need an all-or-nothing unit receive a runner instead of
decorating themselves with @transaction.atomic, so tests can inject a
runner that fails mid-unit or simulates contention.
"""
from django.db import transaction


def run_in_transaction(fn, *args, **kwargs):
    """
    Execute fn(*args, **kwargs) inside a database transaction.

    Any exception raised by fn rolls back every write made inside it and is
    re-raised to the caller. Nested calls become savepoints.
    """
    with transaction.atomic():
        return fn(*args, **kwargs)
