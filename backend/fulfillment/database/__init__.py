"""
Database package.

- base: declarative base, mixins and the label enum column type
- connection: async engine and session management
- repository: shared repository plumbing
- models: ORM models for orders, deliveries, riders, invoices and stock
"""

__all__ = []
