"""
Core package for shared utilities.

Holds configuration, structured logging and the courier request-signing
primitive shared across the backend application.
"""
