"""
Location Core Package.

Location tracking and signal conditioning for a location-based game client:
raw position fixes in, a stable smoothed location out.

Package structure:
- proto: Fix, location and error schemas
- localization: Signal filter, great-circle geometry
- io: Positioning platforms, fix stream, peer broadcast
- domain: Session lifecycle, display lock, location publisher
- metrics: Diagnostics, counters, histograms
"""

__version__ = "0.1.0"
__author__ = "Location Core Team"
