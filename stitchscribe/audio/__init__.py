"""Audio capture, WAV coding and silence trimming."""

from .audio_pub import AudioPublisher
from .trimmer import trim_silence, trim_leading_silence, trim_silence_file
from .wav_codec import decode_wav, encode_wav, to_mono

__all__ = [
    'AudioPublisher',
    'trim_silence',
    'trim_leading_silence',
    'trim_silence_file',
    'decode_wav',
    'encode_wav',
    'to_mono',
]
