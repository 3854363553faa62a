"""
slotbook - slot availability and booking for partner services.
"""

__version__ = "0.3.0"
