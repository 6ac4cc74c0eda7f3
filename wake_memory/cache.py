"""
LRU cache for pre-fetched Wake Memory snapshots
Copyright 2025 Jurden Bruce
"""

from collections import OrderedDict


class LRUCache(OrderedDict):
    """LRU cache with max size and hit/miss counters"""
    def __init__(self, maxsize=1000):
        self.maxsize = maxsize
        self.hits = 0
        self.misses = 0
        super().__init__()

    def __setitem__(self, key, value):
        if key in self:
            self.move_to_end(key)
        super().__setitem__(key, value)
        if len(self) > self.maxsize:
            oldest = next(iter(self))
            del self[oldest]

    def __getitem__(self, key):
        value = super().__getitem__(key)
        self.move_to_end(key)
        return value

    def lookup(self, key, default=None):
        """Counted get; plain get() and `in` checks are not counted"""
        if key in self:
            self.hits += 1
            return self[key]
        self.misses += 1
        return default

    def discard(self, key):
        self.pop(key, None)

    def stats(self):
        total = self.hits + self.misses
        return {
            "size": len(self),
            "maxsize": self.maxsize,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total, 3) if total else 0.0,
        }
