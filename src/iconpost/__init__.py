"""
iconpost: background removal and bitmap tracing for icon imagery.
"""

__version__ = "1.0.0"
