"""
Weekly issue digest built from independently analyzed podcast episodes.
"""
__version__ = "2.0.0"
