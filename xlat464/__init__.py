"""
xlat464 - 464XLAT translation interface lifecycle manager.

This package watches the primary mobile upstream and the clat interface,
starts and stops the translation daemon, and announces state changes.
"""

__version__ = "1.0.0"
__author__ = "xlat464 Contributors"
