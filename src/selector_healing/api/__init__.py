"""
API module for the selector healing engine.

This module contains:
- healing_endpoints.py: Healing sessions, element identification and event streams
"""

__all__ = ["healing_endpoints"]
