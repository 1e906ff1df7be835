"""Storage boundary of the runtime.

The runtime is written against the ``Storage`` Protocol so it can be used
with:

- the in-memory implementation provided in ``repos.memory`` (tests and
  single-process use),
- filesystem or object-store backends supplied by the caller.
"""

from .interfaces import Storage
from .memory import InMemoryStorage

__all__ = [
    "Storage",
    "InMemoryStorage",
]
