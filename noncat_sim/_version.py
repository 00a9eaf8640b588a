"""Version information for noncat_sim."""

__version__ = "0.3.0"
