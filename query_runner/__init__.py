"""Command-line runner for Cloud CMS branch queries.

Connects to a project's content branch from a gitana.json file and runs
query, search, find, traverse, tree and GraphQL requests against it.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
