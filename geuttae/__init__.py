"""
Geuttae - circles, memory pieces and meetups.
"""

__version__ = "0.1.0"
