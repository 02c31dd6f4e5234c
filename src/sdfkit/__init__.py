"""sdfkit: scripted signed-distance-field scenes for WGSL and numpy."""

__version__ = "0.1.0"
