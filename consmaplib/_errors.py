"""Exceptions raised by consmaplib."""


class MalformedMeshError(ValueError):
    """Raised when a mesh cannot be decomposed into valid tetrahedra.

    Non-manifold cells, non-positive cell volumes and broken connectivity
    all end up here. The check runs before any weight computation starts.
    """
