"""Domain layer - session, library, upload, playback, remote store and AI."""
