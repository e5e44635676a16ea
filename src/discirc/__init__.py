"""discirc: IRC <-> Discord channel relay."""

__version__ = "0.3.0"
