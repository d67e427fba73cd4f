"""
MFL API Service Module
Modular components for MyFantasyLeague API integration.
"""

from .client import RateLimiter, MFLHTTPClient
from .cache import CacheCategory, InMemoryCache
from .processors import MFLDataProcessor
from .service import MFLService

__all__ = [
    "RateLimiter",
    "MFLHTTPClient",
    "CacheCategory",
    "InMemoryCache",
    "MFLDataProcessor",
    "MFLService",
]
