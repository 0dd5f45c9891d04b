"""Test fixtures for CRMRES tests.

Provides:
- Read helpers over the test database
- Sample deal exports
"""

from .database import DBInspector
from .deals import SAMPLE_DEALS, deal

__all__ = ["DBInspector", "SAMPLE_DEALS", "deal"]
