"""
Core package for shared utilities.

Configuration, logging, security, permissions and the error taxonomy used
across the fulfillment backend.
"""
