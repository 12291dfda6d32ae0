"""Prize wheel and organizer draw engine."""

__version__ = "0.1.0"
