"""SonicStream - audio player core with cloud sync and guest mode."""

__version__ = "0.1.0"
