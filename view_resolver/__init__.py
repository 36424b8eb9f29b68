"""View Resolver Package.

This package reconstructs the logical structure of a multi-view microscopy
acquisition from an unordered set of image files.

Main functionality:
- Axis classification: decide for timepoints, channels, illuminations,
  angles and tiles whether a dataset has one or several instances
- Disambiguation of channels vs. illuminations and angles vs. tiles
- ID assignment from file metadata, series/channel indices or filename patterns
- Z-grouping: merge single-plane files into stacks
- View assembly: view setups, timepoints, missing views and the source of
  every view
"""

from .assembly import DuplicateView, ResolvedDataset, assemble_views
from .errors import ConfigurationAmbiguityError, UnsupportedInputError
from .metadata_probe import MetadataProber, TiffMetadataProber
from .model import Axis, DataSourceRef, Multiplicity, ViewId, ViewSetup
from .parameters import PatternRole, ResolverParameters
from .resolver import ProgressCallbacks, ViewResolver

__all__ = [
    'Axis',
    'ConfigurationAmbiguityError',
    'DataSourceRef',
    'DuplicateView',
    'MetadataProber',
    'Multiplicity',
    'PatternRole',
    'ProgressCallbacks',
    'ResolvedDataset',
    'ResolverParameters',
    'TiffMetadataProber',
    'UnsupportedInputError',
    'ViewId',
    'ViewResolver',
    'ViewSetup',
    'assemble_views',
]
