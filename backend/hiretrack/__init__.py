"""HireTrack - application lifecycle and hiring metrics service."""

__version__ = "0.1.0"
