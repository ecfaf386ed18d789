"""Personal Primer - daily artifact curation."""

__version__ = "0.1.0"
