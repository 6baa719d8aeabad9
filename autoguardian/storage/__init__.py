"""
Storage layer: SQLite connection, models and repository.
"""
