"""Live call-audio transcription relay"""

__version__ = "1.0.0"
