"""inkpress: article publishing backend with follower fan-out."""

__version__ = "1.0.0"
