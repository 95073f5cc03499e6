"""
Shared utilities: logging, process running, fetching and file handling.
"""
