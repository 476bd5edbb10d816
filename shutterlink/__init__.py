"""Shutterlink: access control and lifecycle core for photo sharing."""

__version__ = "0.1.0"
