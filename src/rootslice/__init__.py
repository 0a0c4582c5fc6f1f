"""
rootslice - Extract foreign-key consistent database subsets rooted at one row.

A CLI tool that discovers the foreign-key network around a single root record,
extracts every row that row owns plus the lookup rows they reference, stages
them to disk, and replays them into another database in a safe order.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
