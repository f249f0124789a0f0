"""Discover WLED controllers and replay sync settings presets onto them."""

__all__ = ["config", "settings", "decoder", "encoder", "discovery", "sync"]
__version__ = "0.1.0"
