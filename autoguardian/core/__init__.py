"""
Core modules for AutoGuardian.

This package contains request validation, the usage gate, prompt
composition, response parsing and the analysis pipeline.
"""
