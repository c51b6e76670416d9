"""stitchscribe: continuous speech capture across recognition engine restarts."""

__version__ = "0.1.0"
