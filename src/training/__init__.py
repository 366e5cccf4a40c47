"""Training engine: progress, assignments, completion and aggregation.

Note: Routers are imported directly in main.py to avoid circular imports.
"""
