"""
hashget: a command-line fetcher with digest verification, resume support and
an optional peer-cache accelerator.
"""

__version__ = "1.0.0"
