"""
shared/__init__.py

Shared models and helpers used across multiple modules.

This package contains common functionality that is used by the session core,
the services layer and the HTTP routes:
- models: Session, ClassificationResult and the enums that configure the core
- utils: Reply formatting helpers

These modules keep the data contract in one place so every layer agrees on it.
"""
