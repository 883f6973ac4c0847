"""Survey chat backend: assistant turns, transcripts and session-side orchestration."""
