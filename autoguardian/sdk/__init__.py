"""
SDK for AutoGuardian.

Clients for the external model provider.
"""

from .openai_client import InferenceClient

__all__ = ["InferenceClient"]
