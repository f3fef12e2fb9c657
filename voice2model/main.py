"""Main application entry point for voice2model."""

import sys
import argparse
import logging
from pathlib import Path

from aiohttp import web

from voice2model.audio.capture import AudioCapture
from voice2model.audio.normalizer import FormatNormalizer
from voice2model.generation.github_publisher import GitHubPublisher
from voice2model.generation.openai_optimizer import OpenAIPromptOptimizer
from voice2model.generation.pipeline import GenerationPipeline
from voice2model.generation.stability import StabilityImageGenerator, StabilityModelGenerator
from voice2model.server.app import create_app
from voice2model.services.events import SessionEventPublisher
from voice2model.services.notifier import ClientNotifier
from voice2model.services.session_controller import SessionController
from voice2model.storage.file_manager import FileManager
from voice2model.transcription.whisper_backend import WhisperBackend

from .config import Voice2ModelConfig

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config_path: str, log_level: str = None):
        # Load configuration
        self.config = Voice2ModelConfig(config_path)
        # Set up logging (command line wins over config)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.app = None

    def init(self) -> web.Application:
        """Build every component from configuration and wire them into the web app."""
        logger.info("Initializing services...")

        sample_rate = self.config.get('audio.sample_rate', 16000)
        chunk_size = self.config.get('audio.chunk_size', 1024)
        channels = self.config.get('audio.channels', 1)
        logger.info(f"Audio settings: {sample_rate}Hz, {chunk_size} samples/chunk, {channels} channels")

        self.file_manager = FileManager(self.config.get_data_directory())
        max_age_days = self.config.get('storage.max_age_days')
        if max_age_days:
            self.file_manager.cleanup_old_recordings(max_age_days)
        logger.info(f"Storage: {self.file_manager.get_storage_stats()}")

        self.audio_capture = AudioCapture(
            sample_rate=sample_rate,
            chunk_size=chunk_size,
            channels=channels,
            flush_grace_seconds=self.config.get('audio.flush_grace_seconds', 1.0),
        )
        self.normalizer = FormatNormalizer(
            ffmpeg_bin=self.config.get('normalizer.ffmpeg_bin', 'ffmpeg'),
            timeout_seconds=self.config.get('normalizer.timeout_seconds', 60),
        )
        self.transcriber = self._create_transcriber()
        self.pipeline = self._create_pipeline()

        self.notifier = ClientNotifier()
        self.controller = SessionController(
            capture=self.audio_capture,
            normalizer=self.normalizer,
            transcriber=self.transcriber,
            pipeline=self.pipeline,
            notifier=self.notifier,
            file_manager=self.file_manager,
            max_recording_seconds=self.config.get('audio.max_recording_seconds', 10),
            event_publisher=SessionEventPublisher(),
            keep_audio=self.config.get('storage.keep_audio', False),
        )

        self.app = create_app(self.controller, self.notifier, self.file_manager)
        self.app.on_cleanup.append(self._on_cleanup)
        return self.app

    def _create_transcriber(self):
        backend = self.config.get('transcription.backend', 'whisper')
        language = self.config.get('transcription.language', 'en-US')

        if backend == 'whisper':
            transcriber = WhisperBackend(
                api_key=self.config.get_secret('openai.api_key'),
                model=self.config.get('transcription.model', 'whisper-1'),
                language=language,
            )
        elif backend == 'google':
            # Imported lazily so the Google client is only loaded when selected
            from voice2model.transcription.google_backend import GoogleSpeechBackend
            transcriber = GoogleSpeechBackend(
                credentials_path=self.config.get_google_credentials_path(),
                language=language,
                use_enhanced=self.config.get('google_cloud.use_enhanced', True),
                enable_automatic_punctuation=self.config.get('google_cloud.enable_automatic_punctuation', True),
            )
        else:
            raise ValueError(f"Unknown transcription backend: {backend}")

        transcriber.initialize()
        logger.info(f"Transcription backend: {transcriber.service_name}")
        return transcriber

    def _create_pipeline(self) -> GenerationPipeline:
        stability_key = self.config.get_secret('stability.api_key')
        owner = self.config.get('github.owner')
        repo = self.config.get('github.repo')
        if not owner or not repo:
            raise ValueError("github.owner and github.repo must be configured")

        return GenerationPipeline(
            optimizer=OpenAIPromptOptimizer(
                api_key=self.config.get_secret('openai.api_key'),
                model=self.config.get('openai.model', 'gpt-4'),
                max_tokens=self.config.get('openai.max_tokens', 100),
                temperature=self.config.get('openai.temperature', 0.7),
            ),
            image_generator=StabilityImageGenerator(stability_key),
            model_generator=StabilityModelGenerator(
                stability_key,
                texture_resolution=self.config.get('stability.texture_resolution', 512),
                foreground_ratio=self.config.get('stability.foreground_ratio', 0.7),
            ),
            publisher=GitHubPublisher(
                token=self.config.get_secret('github.token'),
                owner=owner,
                repo=repo,
                branch=self.config.get('github.branch', 'main'),
                commit_message=self.config.get('github.commit_message', 'Update Model'),
            ),
            file_manager=self.file_manager,
            style_modifier=self.config.get_prompt_modifier(),
            remote_path=self.config.get('github.path', 'docs/generated_model.glb'),
            max_name_length=self.config.get('generation.max_name_length', 20),
        )

    def run(self, host: str = None, port: int = None) -> None:
        host = host or self.config.get('server.host', '0.0.0.0')
        port = port or self.config.get('server.port', 3333)
        logger.info(f"Server listening on http://{host}:{port}")
        web.run_app(self.app, host=host, port=port, print=None)

    async def _on_cleanup(self, app: web.Application) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        self.transcriber.cleanup()
        logger.info("Server stopped")


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/voice2model.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

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
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("voice2model server starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for the voice2model server."""
    parser = argparse.ArgumentParser(
        description="voice2model - turn a spoken description into a published 3D model"
    )

    parser.add_argument(
        "--config",
        type=str,
        default="voice2model.yaml",
        help="Path to configuration YAML file (default: voice2model.yaml)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config, else INFO)"
    )

    parser.add_argument("--host", type=str, help="Bind address (overrides server.host)")
    parser.add_argument("--port", type=int, help="Listen port (overrides server.port)")

    parser.add_argument(
        "--version",
        action="version",
        version="voice2model v0.1.0"
    )

    args = parser.parse_args()

    try:
        server = Server(args.config, args.log_level)
        server.init()
    except Exception as e:
        print(f"Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)

    server.run(args.host, args.port)


if __name__ == "__main__":
    main()
