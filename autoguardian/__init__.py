"""
AutoGuardian: AI diagnostics for car owners.
"""

__version__ = "0.1.0"
