"""Built-in detectors.

Importing this package fills ``rules.registry.DETECTORS``.
"""

from rules.detectors import access, calls, environment, hygiene, loops, reentrancy

__all__ = ["access", "calls", "environment", "hygiene", "loops", "reentrancy"]
