"""
MIT License

Copyright (c) 2025 Pan Yu

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in all
copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
SOFTWARE.

Author: Pan Yu
"""

import numpy as np
import threading
import time
from collections import OrderedDict
from typing import Dict, Tuple, Optional, Any


def _entry_memory_mb(arrays: Tuple[np.ndarray, ...]) -> float:
  return sum(a.nbytes for a in arrays) / (1024 * 1024)


def _key_prefix(cache_key: str) -> str:
  return cache_key.split('_', 1)[0]


class CacheManager:
  """
  Thread-safe LRU cache for per-pixel render maps.

  Entries are tuples of numpy arrays stored under string keys. The part of a
  key before the first underscore names the kind of map (for example
  'rays_960x540_fov75.0000'), which the statistics group by. The renderer's
  worker threads read from the same cache, so every operation takes the lock.
  """

  def __init__(self, max_memory_mb: Optional[float] = None):
    """
    Parameters:
    - max_memory_mb: Optional maximum memory usage in MB. If None, no limit is enforced.
    """
    self._cache: OrderedDict[str, Tuple[Tuple[np.ndarray, ...], float]] = OrderedDict()
    self._max_memory_mb = max_memory_mb
    self._lock = threading.RLock()
    self._access_count = 0
    self._hit_count = 0
    self._eviction_count = 0

  def get(self, cache_key: str) -> Optional[Tuple[np.ndarray, ...]]:
    """
    Retrieve cached arrays and mark the entry most recently used.

    Returns:
    - tuple of arrays if found, None otherwise
    """
    with self._lock:
      self._access_count += 1

      if cache_key in self._cache:
        arrays, _ = self._cache[cache_key]
        self._cache[cache_key] = (arrays, time.time())
        self._cache.move_to_end(cache_key)
        self._hit_count += 1
        return arrays

      return None

  def put(self, cache_key: str, *arrays: np.ndarray) -> bool:
    """
    Store arrays under a key, evicting least recently used entries when needed.

    Stored arrays are marked read-only since callers share them.

    Returns:
    - True if the entry was stored, False if it cannot fit under the memory limit
    """
    if not arrays:
      raise ValueError("Nothing to cache")

    with self._lock:
      new_memory_mb = _entry_memory_mb(arrays)
      stored = tuple(np.array(a, copy=True) for a in arrays)
      for a in stored:
        a.flags.writeable = False

      if cache_key in self._cache:
        self._cache[cache_key] = (stored, time.time())
        self._cache.move_to_end(cache_key)
        return True

      if self._max_memory_mb is not None:
        current_memory = self._calculate_total_memory_mb()

        while current_memory + new_memory_mb > self._max_memory_mb and len(self._cache) > 0:
          lru_key, (lru_arrays, _) = self._cache.popitem(last=False)
          freed_memory = _entry_memory_mb(lru_arrays)
          current_memory -= freed_memory
          self._eviction_count += 1

          print(f"LRU evicted: {lru_key} (freed {freed_memory:.1f} MB)")

        if current_memory + new_memory_mb > self._max_memory_mb:
          print(f"Warning: Cannot add cache entry - exceeds memory limit even after eviction "
                f"({self._max_memory_mb:.1f} MB)")
          return False

      self._cache[cache_key] = (stored, time.time())
      return True

  def remove(self, cache_key: str) -> bool:
    with self._lock:
      if cache_key in self._cache:
        del self._cache[cache_key]
        return True
      return False

  def clear(self) -> None:
    with self._lock:
      self._cache.clear()

  def contains(self, cache_key: str) -> bool:
    with self._lock:
      return cache_key in self._cache

  def get_info(self) -> Dict[str, Any]:
    """
    Get cache statistics.

    Returns:
    - Dictionary with entry counts per map kind, memory usage and LRU counters
    """
    with self._lock:
      counts: Dict[str, int] = {}
      total_memory_mb = 0.0

      for key, (arrays, _) in self._cache.items():
        prefix = _key_prefix(key)
        counts[prefix] = counts.get(prefix, 0) + 1
        total_memory_mb += _entry_memory_mb(arrays)

      return {
        'total_entries': len(self._cache),
        'entries_by_kind': counts,
        'memory_usage_mb': total_memory_mb,
        'max_memory_mb': self._max_memory_mb,
        'memory_limit_enabled': self._max_memory_mb is not None,
        'total_accesses': self._access_count,
        'total_hits': self._hit_count,
        'total_evictions': self._eviction_count
      }

  def print_status(self) -> None:
    info = self.get_info()
    kinds = ", ".join(f"{count} {kind}" for kind, count in sorted(info['entries_by_kind'].items()))
    print(f"Cache status: {info['total_entries']} entries ({kinds or 'empty'}), "
          f"{info['memory_usage_mb']:.1f} MB")

    if info['memory_limit_enabled']:
      usage_percent = (info['memory_usage_mb'] / info['max_memory_mb']) * 100
      print(f"Cache memory usage: {usage_percent:.1f}% of {info['max_memory_mb']:.1f} MB limit")

  def _calculate_total_memory_mb(self) -> float:
    return sum(_entry_memory_mb(arrays) for arrays, _ in self._cache.values())

  def get_cache_keys(self, prefix: Optional[str] = None) -> list:
    with self._lock:
      if prefix is None:
        return list(self._cache.keys())
      return [key for key in self._cache.keys() if key.startswith(prefix)]

  def get_lru_order(self) -> list:
    """Cache keys ordered from least to most recently used."""
    with self._lock:
      return list(self._cache.keys())
