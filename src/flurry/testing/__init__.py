"""Test utilities for flurry applications::

    from flurry.testing import TestClient
"""

from flurry.testing.client import TestClient

__all__ = ["TestClient"]
