"""
Core module for the selector healing engine.

This module contains:
- config.py: Process settings
- config_loader.py: Healing policy loading and validation
- exceptions.py: Error taxonomy
- logging_config.py: Logging configuration
- metrics.py: Metrics and monitoring
"""

__all__ = ["config", "config_loader", "exceptions", "logging_config", "metrics"]
