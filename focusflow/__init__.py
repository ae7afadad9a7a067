"""FocusFlow - agent core for the focus coach."""
__version__ = "0.1.0"
