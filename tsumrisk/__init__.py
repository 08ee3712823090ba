"""TSum phenology, frost and wet-harvest risk for climate reference cells."""

__version__ = "0.1.0"
