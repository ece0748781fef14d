"""
CorpTax Kernel

Shared foundations for the corporate advance tax and MAT engine:
- Typed, coded exceptions
- Structured JSON logging with request-scoped context
- Injected clock, fiscal-year and rounding value objects
- SQLAlchemy declarative base, session management, immutability listeners
"""

__version__ = "0.1.0"
