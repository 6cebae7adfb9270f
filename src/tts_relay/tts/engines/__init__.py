"""Concrete speech provider engines, imported lazily by tts.engine."""
