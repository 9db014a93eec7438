"""SpeakUp: exercise session and progress engine for language learners."""

__version__ = "0.1.0"
