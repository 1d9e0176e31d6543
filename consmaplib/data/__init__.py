"""Data handling: addressing records and their persistent cache."""

from consmaplib.data._addressing import Addressing
from consmaplib.data._cache import AddressingCache

__all__ = ['Addressing', 'AddressingCache']
