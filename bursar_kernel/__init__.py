"""
Bursar Kernel

Shared foundation for the school financial computation core:
- Money and currency value objects (Decimal only, ISO 4217)
- Fee and payroll domain types
- Typed exception hierarchy
- Structured logging
- SQLAlchemy base classes and ORM records
"""

__version__ = "0.1.0"
