"""
Screen Assistant - periodic screen capture with AI analysis from the system tray.
"""

__version__ = "1.0.0"
