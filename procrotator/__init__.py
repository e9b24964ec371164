"""
procrotator package.

Runs a server command and restarts it whenever watched files change.
See `procrotator.main` for the command line entry point.
"""

__version__ = "0.1.0"
