"""Colour-distance background removal."""
