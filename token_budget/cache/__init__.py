from .ground_truth import CachedTokenCount, TokenCache
from .lru import LRUCache

__all__ = ["CachedTokenCount", "LRUCache", "TokenCache"]
