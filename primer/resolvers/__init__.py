"""Catalog and archive resolvers: proposals in, verified references (or None) out."""

from primer.resolvers.image import ImageResolver
from primer.resolvers.music import MusicResolver
from primer.resolvers.reading import ReadingResolver

__all__ = [
    "ImageResolver",
    "MusicResolver",
    "ReadingResolver",
]
