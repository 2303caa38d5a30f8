"""Typed, namespaced and observable key-value storage.

This package provides:
- A small backend contract with in-memory, file, encrypted file and MongoDB backends
- Containers with typed values, change listeners and live subscriptions
- Object containers for whole JSON records
"""

__all__ = ["storage", "utils"]
