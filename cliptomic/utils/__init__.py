"""Utility modules for Cliptomic: logging setup and tray icon resources."""
