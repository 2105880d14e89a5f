"""In-memory state managers for the chat runtime.

Managers hold state and raise domain exceptions (``LookupError``,
``ValueError``); they never perform I/O.  Persistence is the coordinator's
responsibility.
"""
