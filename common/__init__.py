"""
Shared value types, error taxonomy and logging setup.
"""
