"""
Core package for the ordering platform
Contains the wiring of repositories and services
"""

from .ordering_platform import OrderingPlatform

__all__ = [
    'OrderingPlatform'
]
