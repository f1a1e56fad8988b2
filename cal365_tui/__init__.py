"""Microsoft 365 calendar in the terminal"""

__version__ = "0.1.0"
