"""Tag-manager obfuscation relay."""

__version__ = "0.1.0"
