"""Service layer helpers"""

from .token_metadata import (
    InMemoryStorage,
    JsonFileStorage,
    MetadataStorage,
    TokenMetadataCache,
    build_token_cache,
    get_token_cache,
)

__all__ = [
    "InMemoryStorage",
    "JsonFileStorage",
    "MetadataStorage",
    "TokenMetadataCache",
    "build_token_cache",
    "get_token_cache",
]
