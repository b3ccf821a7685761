"""LevelUp progression and trust-verification engine"""

__version__ = "0.1.0"
