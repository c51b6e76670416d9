"""Main application entry point for stitchscribe."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional, Tuple

from pubsub import pub
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .audio.trimmer import trim_silence, trim_silence_file
from .config import StitchscribeConfig
from .models.audio import TrimResult
from .models.events import SessionEvent
from .models.session import TranscriptSnapshot
from .storage.file_manager import FileManager
from .transcription.pause_tracker import PauseTracker
from .transcription.publisher import SessionPublisher
from .services.session_manager import SessionManager

logger = logging.getLogger(__name__)
console = Console()


class Server:
    """Records from the microphone through a restarting engine for a fixed duration."""

    def __init__(self, config: StitchscribeConfig):
        self.config = config
        self.session_topic = config.get('recognition.topic', 'capture.session')
        self.audio_topic = config.get('audio.topic', 'audio.frame')
        self.failed: Optional[asyncio.Event] = None

    def _on_session_event(self, event: SessionEvent) -> None:
        if event.event_type == "transcript":
            interim = event.metadata.get("interim_transcript", "")
            logger.debug(f"Transcript update: {event.metadata.get('final_transcript', '')!r} "
                         f"(interim {interim!r})")
        elif event.event_type == "state":
            logger.info(f"Session {event.session_id} state: {event.metadata.get('state')}")
        elif event.event_type == "error":
            console.print(f"❌ {event.metadata.get('error')}", style="bold red")
            self.failed.set()

    async def run(self, duration: float) -> Tuple[TranscriptSnapshot, bytes]:
        # Imported here so `trim` works without audio or Cloud libraries
        from .audio.audio_pub import AudioPublisher
        from .audio.capture import AudioCapture
        from .transcription.google_backend import GoogleEngineFactory

        loop = asyncio.get_running_loop()
        self.failed = asyncio.Event()

        sample_rate = self.config.get('audio.sample_rate', 16000)
        chunk_size = self.config.get('audio.chunk_size', 1024)
        channels = self.config.get('audio.channels', 1)
        logger.info(f"Audio settings: {sample_rate}Hz, {chunk_size} samples/chunk, {channels} channels")

        audio_publisher = AudioPublisher(self.audio_topic)
        audio_capture = AudioCapture(
            callback=audio_publisher.publish_audio_event,
            sample_rate=sample_rate,
            chunk_size=chunk_size,
            channels=channels,
        )
        engine_factory = GoogleEngineFactory(
            credentials_path=self.config.get_google_credentials_path(),
            loop=loop,
            audio_topic=self.audio_topic,
            sample_rate=sample_rate,
            model=self.config.get('recognition.model', 'latest_long'),
        )

        pause_threshold, long_pause_threshold = self.config.get_pause_thresholds()
        limits = self.config.get_session_limits()
        manager = SessionManager(
            engine_factory,
            self.config.get_profile(),
            loop=loop,
            accent=self.config.get('recognition.accent', 'en-US'),
            limits=limits,
            watchdog_settings=self.config.get_watchdog_settings(),
            publisher=SessionPublisher(self.session_topic),
            pause_tracker=PauseTracker(loop.time, pause_threshold, long_pause_threshold),
        )

        pub.subscribe(self._on_session_event, self.session_topic)
        audio_capture.start_recording()
        manager.start()
        try:
            try:
                await asyncio.wait_for(self.failed.wait(), timeout=duration)
            except asyncio.TimeoutError:
                logger.info(f"Recording duration of {duration}s reached")
            manager.stop()
            # Let late finals arrive before the grace timer flushes
            await asyncio.sleep(limits.stop_grace_s + 0.1)
        finally:
            audio_capture.stop_recording()
            pub.unsubscribe(self._on_session_event, self.session_topic)
            # Streams finish once the server answers the closed request stream
            await loop.run_in_executor(None, engine_factory.join_engines, 2.0)

        return manager.snapshot(), audio_capture.to_wav_bytes()


def setup_logging(config: StitchscribeConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/stitchscribe.log')
    console_output = config.get('logging.console_output', True)

    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("stitchscribe starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def print_trim_summary(result: TrimResult) -> None:
    if result.trimmed_leading_ms == 0 and result.trimmed_trailing_ms == 0:
        console.print("Nothing trimmed", style="yellow")
    else:
        console.print(f"✂️  Trimmed {result.trimmed_leading_ms}ms leading, "
                      f"{result.trimmed_trailing_ms}ms trailing", style="green")


def print_session_summary(snapshot: TranscriptSnapshot, session_dir: Optional[Path]) -> None:
    table = Table(show_header=False, box=None)
    table.add_row("State", snapshot.state.value)
    table.add_row("Profile", f"{snapshot.profile} ({snapshot.accent})")
    table.add_row("Duration", f"{snapshot.session_duration:.1f}s")
    table.add_row("Restarts", str(snapshot.restart_count))
    table.add_row("Words", str(len(snapshot.words)))
    if snapshot.pause_metrics is not None:
        metrics = snapshot.pause_metrics
        table.add_row("Pauses", f"{metrics.pause_count} ({metrics.long_pause_count} long, "
                                f"longest {metrics.longest_pause_s:.1f}s)")
    if snapshot.error:
        table.add_row("Error", f"[red]{snapshot.error}[/red]")
    if session_dir is not None:
        table.add_row("Saved to", str(session_dir))

    console.print(Panel(table, title="Session", border_style="blue"))
    console.print(Panel(snapshot.final_transcript or "[dim](no speech)[/dim]", title="Transcript"))


def cmd_listen(args: argparse.Namespace, config: StitchscribeConfig) -> int:
    server = Server(config)
    console.print(f"🎙️  Listening for {args.duration}s...", style="bold blue")
    snapshot, wav_bytes = asyncio.run(server.run(args.duration))

    file_manager = FileManager(config.get_data_directory())
    session_id = file_manager.create_session_directory()
    file_manager.save_transcript(session_id, snapshot)
    file_manager.save_audio(session_id, wav_bytes, "audio_raw.wav")

    trim_config = config.get_trim_config()
    result = trim_silence(wav_bytes, trim_config)
    file_manager.save_audio(session_id, result.blob, "audio.wav")

    print_session_summary(snapshot, file_manager.get_session_path(session_id))
    print_trim_summary(result)
    return 1 if snapshot.error else 0


def cmd_trim(args: argparse.Namespace, config: StitchscribeConfig) -> int:
    if args.trim_trailing:
        config.set('trim.trim_trailing', True)
    trim_config = config.get_trim_config()
    result = trim_silence_file(args.input, args.output, trim_config)
    print_trim_summary(result)
    return 0


def main() -> None:
    """Main entry point for stitchscribe."""
    parser = argparse.ArgumentParser(
        description="stitchscribe - continuous speech capture across engine restarts"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="stitchscribe v0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    listen_parser = subparsers.add_parser("listen", help="Record and transcribe from the microphone")
    listen_parser.add_argument(
        "--duration",
        type=float,
        default=60.0,
        help="Recording duration in seconds (default: 60)"
    )
    listen_parser.set_defaults(handler=cmd_listen)

    trim_parser = subparsers.add_parser("trim", help="Trim silence from a WAV file")
    trim_parser.add_argument("input", help="Input WAV file")
    trim_parser.add_argument("output", help="Output WAV file")
    trim_parser.add_argument(
        "--trim-trailing",
        action="store_true",
        help="Also trim trailing silence"
    )
    trim_parser.set_defaults(handler=cmd_trim)

    args = parser.parse_args()

    try:
        config = StitchscribeConfig(args.config)
        setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))
        sys.exit(args.handler(args, config))
    except KeyboardInterrupt:
        console.print("\n👋 Goodbye!")
    except (FileNotFoundError, ValueError, OSError) as e:
        console.print(f"❌ Error: {e}", style="bold red")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
