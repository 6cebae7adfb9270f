"""
Utility modules for tts-relay.

    - audio.py: Local WAV generation (fallback tone, pause silence)
    - text.py: Text normalization before fingerprinting
    - timeit.py: Timing helpers
"""
