"""
Application Layer

Orchestrates the queue domain against the event log and the audio stack.

Structure:
- services/: Queue client, playback arbiter, poll loop and push notifications
- interfaces/: Port interfaces for playback and track resolution adapters
"""
