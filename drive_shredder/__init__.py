"""
Drive Shredder - concurrent secure erase for removable drives
"""

__version__ = "1.0.0"
