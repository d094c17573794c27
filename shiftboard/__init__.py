"""Shiftboard: manual shift scheduling on a 15-minute day grid."""

__version__ = "0.1.0"
