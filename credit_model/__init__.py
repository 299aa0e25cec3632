"""Financial projection, covenant and stress-testing engine."""

__version__ = "0.1.0"
