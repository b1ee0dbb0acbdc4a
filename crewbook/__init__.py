"""
Crewbook - booking lifecycle and QR attendance core.
"""

__version__ = "1.0.0"
