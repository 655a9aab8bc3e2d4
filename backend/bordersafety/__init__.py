"""
Border Safety Backend Package

Application log and threat-level service for the border-area public-safety app.
"""
__version__ = "1.0.0"
