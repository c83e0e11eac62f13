"""Audio adapters: microphone, recognition, synthesis and playback."""
