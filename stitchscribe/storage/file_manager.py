"""File management for session transcripts and trimmed audio."""

import json
import logging
import random
import string
from dataclasses import asdict
from pathlib import Path
from datetime import datetime
from typing import Any, Dict

from ..models.session import TranscriptSnapshot


logger = logging.getLogger(__name__)


class FileManager:
    """Stores each capture session in its own directory."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize file manager with data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.sessions_dir = self.data_dir / "sessions"
        self.logs_dir = self.data_dir / "logs"

        for directory in [self.data_dir, self.sessions_dir, self.logs_dir]:
            directory.mkdir(parents=True, exist_ok=True)

        logger.info(f"FileManager initialized with data_dir: {self.data_dir}")

    def create_session_directory(self) -> str:
        """Create new session directory with timestamp and random suffix.

        Returns:
            Session ID (timestamp-based with random suffix)
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
        session_id = f"{timestamp}_{random_suffix}"
        session_path = self.sessions_dir / session_id
        session_path.mkdir(exist_ok=True)

        logger.info(f"Created session directory: {session_path}")
        return session_id

    def get_session_path(self, session_id: str) -> Path:
        return self.sessions_dir / session_id

    @staticmethod
    def snapshot_to_dict(snapshot: TranscriptSnapshot) -> Dict[str, Any]:
        data = asdict(snapshot)
        data["state"] = snapshot.state.value
        data["words"] = [asdict(word) for word in snapshot.words]
        data["ghost_words"] = list(snapshot.ghost_words)
        if snapshot.pause_metrics is not None:
            data["pause_metrics"]["pauses"] = list(snapshot.pause_metrics.pauses)
        return data

    def save_transcript(self, session_id: str, snapshot: TranscriptSnapshot) -> str:
        """Write transcript.json (full snapshot) and transcript.txt (final text).

        Returns:
            Path to the JSON file
        """
        session_path = self.get_session_path(session_id)
        session_path.mkdir(parents=True, exist_ok=True)

        json_file = session_path / "transcript.json"
        with open(json_file, 'w', encoding='utf-8') as f:
            json.dump(self.snapshot_to_dict(snapshot), f, indent=2)

        text_file = session_path / "transcript.txt"
        text_file.write_text(snapshot.final_transcript + "\n", encoding='utf-8')

        logger.info(f"Transcript saved: {json_file} ({len(snapshot.words)} words)")
        return str(json_file)

    def save_audio(self, session_id: str, wav_bytes: bytes, name: str = "audio.wav") -> str:
        """Save WAV data into the session directory and return its path."""
        if not name.endswith('.wav'):
            name += '.wav'

        session_path = self.get_session_path(session_id)
        session_path.mkdir(parents=True, exist_ok=True)

        audio_file_path = session_path / name
        with open(audio_file_path, 'wb') as f:
            f.write(wav_bytes)

        logger.info(f"Audio file saved: {audio_file_path} ({len(wav_bytes)} bytes)")
        return str(audio_file_path)
