"""
Castflow Studio
===============

Collaboration back end for podcast episode review and publishing.
"""

__version__ = "0.1.0"
