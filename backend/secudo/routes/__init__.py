"""
Secudo API routes
"""
