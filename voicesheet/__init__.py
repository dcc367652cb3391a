"""VoiceSheet: fill spreadsheet rows by voice."""

__version__ = "0.1.0"
