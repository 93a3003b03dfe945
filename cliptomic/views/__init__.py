"""
Views package for Cliptomic

This package contains the View layer components following the MVC pattern:
- TrayManager: System tray icon, status line and menu
- NotificationManager: OS notifications with fallbacks
- UIManager: PyQt6 window management and coordination
- SettingsWindow: Rewrite configuration dialog

Modules are imported directly; importing the package does not load Qt.
"""
