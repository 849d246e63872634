"""Storm surge hazard sets from tropical cyclone wind footprints."""

__version__ = "0.3.0"
