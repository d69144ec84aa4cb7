"""Manifest loading."""
from strata.config.loader import ManifestError, ManifestLoader

__all__ = ['ManifestError', 'ManifestLoader']
