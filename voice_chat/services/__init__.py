"""Remote services and shared schemas."""
