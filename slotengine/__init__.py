"""
slotengine - appointment slot calculation and double-booking prevention.
"""

__version__ = "0.1.0"
