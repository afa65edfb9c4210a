"""Keep one local file and one Google Drive file in agreement."""

__version__ = "1.0.0"
