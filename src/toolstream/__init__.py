"""toolstream: stage-routed, tool-augmented chat streaming."""

__version__ = "0.1.0"
