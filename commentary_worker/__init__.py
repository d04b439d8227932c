"""Background worker that turns source videos into multi-speaker AI commentary."""

__version__ = "0.1.0"
