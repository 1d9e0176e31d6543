"""
Persistence of computed addressing, keyed by the source/target mesh pair.

The file is JSON: it stores both mesh signatures next to the addressing,
weights and centres. Python's ``json`` writes floats with ``repr``, so a
stored record loads back bit for bit.

A record that is missing, unreadable, of another format, or whose mesh
signatures no longer match is a cache miss: ``load`` returns None and the
caller recomputes. Nothing is raised.

Usage
-----
    from consmaplib.data import AddressingCache

    cache = AddressingCache('addressing')
    addressing = cache.load(src, tgt)
    if addressing is None:
        addressing = compute(...)
        cache.store(src, tgt, addressing)
"""

import json
import logging
import re
from pathlib import Path

import numpy as np

from consmaplib.data._addressing import Addressing

logger = logging.getLogger(__name__)

FORMAT = 'consmaplib_addressing_v1'


def _safe(name: str) -> str:
    return re.sub(r'[^A-Za-z0-9_.-]+', '_', name) or 'mesh'


class AddressingCache:
    """Load/store addressing records in a directory.

    Parameters
    ----------
    directory : str or Path
        Where records are kept; created on first store.
    """

    def __init__(self, directory='addressing'):
        self.directory = Path(directory)

    @staticmethod
    def key(src_mesh, tgt_mesh) -> str:
        """Record key of a mesh pair (their names)."""
        return f"{_safe(src_mesh.name)}-to-{_safe(tgt_mesh.name)}"

    def path(self, src_mesh, tgt_mesh) -> Path:
        return self.directory / f"{self.key(src_mesh, tgt_mesh)}.json"

    def store(self, src_mesh, tgt_mesh, addressing: Addressing) -> str:
        """Write the record for ``(src_mesh, tgt_mesh)``.

        Returns
        -------
        str
            The path written to.
        """
        record = {
            'format': FORMAT,
            'source': {'name': src_mesh.name, 'signature': list(src_mesh.signature)},
            'target': {'name': tgt_mesh.name, 'signature': list(tgt_mesh.signature)},
            'addressing': [p.tolist() for p in addressing.parents],
            'weights': [w.tolist() for w in addressing.weights],
            'centres': [c.tolist() for c in addressing.centres],
        }
        path = self.path(src_mesh, tgt_mesh)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(record, f)
        logger.info("Wrote addressing for %s to %s", self.key(src_mesh, tgt_mesh), path)
        return str(path)

    def load(self, src_mesh, tgt_mesh):
        """Read the record for ``(src_mesh, tgt_mesh)``.

        Returns
        -------
        Addressing or None
            None on any kind of miss.
        """
        path = self.path(src_mesh, tgt_mesh)
        if not path.exists():
            logger.debug("No cached addressing at %s", path)
            return None
        try:
            with open(path) as f:
                record = json.load(f)
        except (OSError, ValueError) as exc:
            logger.debug("Unreadable addressing cache %s: %s", path, exc)
            return None

        if not isinstance(record, dict) or record.get('format') != FORMAT:
            logger.debug("Ignoring %s: unknown format", path)
            return None
        try:
            src_sig = tuple(record['source']['signature'])
            tgt_sig = tuple(record['target']['signature'])
            parents = record['addressing']
            weights = record['weights']
            centres = record['centres']
        except (KeyError, TypeError):
            logger.debug("Ignoring %s: incomplete record", path)
            return None

        if src_sig != tuple(src_mesh.signature) or tgt_sig != tuple(tgt_mesh.signature):
            logger.debug("Ignoring %s: mesh signature changed", path)
            return None
        if not (len(parents) == len(weights) == len(centres) == tgt_mesh.n_cells):
            logger.debug("Ignoring %s: wrong number of target cells", path)
            return None

        addressing = Addressing(
            parents=[np.asarray(p, dtype=int) for p in parents],
            weights=[np.asarray(w, dtype=float) for w in weights],
            centres=[np.asarray(c, dtype=float).reshape(-1, 3) for c in centres],
        )
        try:
            addressing.validate(src_mesh.n_cells)
        except ValueError as exc:
            logger.debug("Ignoring %s: %s", path, exc)
            return None
        logger.info("Read addressing for %s from %s", self.key(src_mesh, tgt_mesh), path)
        return addressing
