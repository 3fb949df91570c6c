"""Parcel Geometry Ingestion Core.

Ingests land-parcel boundaries supplied by field agents (shapefile ZIP,
KML/KMZ, GeoJSON), normalizes them into canonical WGS 84 MultiPolygons,
hashes them for content-addressed deduplication, and applies the accepted
features to farmer records.
"""

__version__ = "0.1.0"
