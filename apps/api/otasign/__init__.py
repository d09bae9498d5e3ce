"""OTASign: re-sign uploaded iOS archives and serve them for over-the-air install."""

__version__ = "1.0.0"
