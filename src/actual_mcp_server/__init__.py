"""
Actual Budget MCP Server - Generic API access to Actual Budget for AI assistants.

This package provides a Model Context Protocol (MCP) server that exposes the
Actual Budget data-access API through a handful of generic tools:
- Discovering API methods from a declarative manifest
- Calling any API method by name with named parameters
- Running AQL queries and reading the AQL schema
- Reading transaction rules in a compact DSL

Entity names are resolved to IDs automatically, and the budget to work on is
loaded on demand (downloading it from the sync server if needed).
"""

__version__ = "0.1.0"
__license__ = "MIT"
