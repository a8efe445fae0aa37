"""
Secudo Services
"""
