"""
Database Module

This module provides the declarative base and engine management for the
scoring engine's tables.
"""

from academia.database.base import Base, ModelBase, metadata

__all__ = ['Base', 'ModelBase', 'metadata']
