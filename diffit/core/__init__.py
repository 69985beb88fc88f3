"""
Core module - Base abstractions and interfaces

Provides foundational components used across diffit:
- Collaborator protocols (decoder, comparator, encoder, blob store)
- Base exception hierarchy
- Configuration management
"""

from diffit.core.config import Settings, get_data_dir, get_settings

__all__ = [
    "Settings",
    "get_data_dir",
    "get_settings",
]
