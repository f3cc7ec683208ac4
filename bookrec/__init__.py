"""
bookrec - book recommendations from a vector index kept in a key-value store.
"""

from .core.config import VERSION

__version__ = VERSION
