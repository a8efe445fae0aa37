"""
Secudo backend: canonical model interchange and restore engine
"""

__version__ = "1.4.0"
