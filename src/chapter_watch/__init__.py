"""Track chapter releases on sites that fight automated fetching."""

__version__ = "0.1.0"
