"""Isodist Domain Layer.

This package contains the core business logic organized by bounded contexts:
- isodistance: grid sampling, distance fields, contour tracing, retry loop
"""

# Imports alphabetized per project style (isort)
from domain import isodistance

__all__ = ["isodistance"]
