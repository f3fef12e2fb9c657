"""voice2model - speak a description, get a published 3D model."""

__version__ = "0.1.0"
