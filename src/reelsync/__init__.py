"""reelsync - Push and pull media-editing projects through a shared drive."""

__version__ = "0.1.0"
