"""Adapters layer for Table-Export.

This module contains adapters that interface with external systems.
Adapters implement Port interfaces defined in the domain layer.
"""
