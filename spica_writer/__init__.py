"""
Spica Writer backend: LLM prompt pipeline and project persistence.
"""

__version__ = "0.1.0"
