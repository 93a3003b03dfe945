"""
Models package for Cliptomic

This package contains the Model layer components following the MVC pattern:
- DatabaseManager: SQLite key/value storage
- SettingsManager: Rewrite configuration management
- ClipboardManager: System clipboard access
- OpenRouterClient: Chat-completion client for rewriting
"""
