"""Web API for SpeakUp practice sessions."""
