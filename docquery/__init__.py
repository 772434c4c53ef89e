"""
docquery: natural-language query engine over a personal document store.
"""

from .core.config import VERSION

__version__ = VERSION
