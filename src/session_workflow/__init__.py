"""Session workflow orchestration: publish and finalize around GitHub issues and Speckit features."""

__version__ = "0.3.0"

__all__ = ["__version__"]
