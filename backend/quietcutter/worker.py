import os
import logging
import tempfile
import time
from contextlib import ExitStack
from pathlib import Path
from typing import Optional

from quietcutter.core.config import settings
from quietcutter.core.errors import handle_worker_error, retry_with_backoff
from quietcutter.models import FileStatus, Job
from quietcutter.services.ffmpeg import MediaInspector
from quietcutter.services.filters import audio_extraction_args, silence_removal_args
from quietcutter.services.log_publisher import publish_log
from quietcutter.services.process_runner import ProcessRunner
from quietcutter.services.status_store import StatusStore
from quietcutter.services.storage_manager import remove_file

logger = logging.getLogger(__name__)


def processed_output_path(job: Job, processed_dir: str) -> str:
    stem = Path(job.source_path).stem
    ext = getattr(job.output_format, "value", job.output_format)
    return os.path.join(processed_dir, f"{job.file_id}_{stem}_processed.{ext}")


class SilenceRemovalJob:
    """
    runs one file through the silence-removal pipeline

    pending -> processing -> [extract audio from video] -> probe duration ->
    silenceremove filter (progress 0-99) -> probe output -> completed (100)
    any failure along the way ends in failed, keeping the last progress value.
    used as the handler of the priority job queue.
    """

    def __init__(
        self,
        store: StatusStore,
        runner: Optional[ProcessRunner] = None,
        inspector: Optional[MediaInspector] = None,
        processed_dir: Optional[str] = None,
        temp_dir: Optional[str] = None,
        ffmpeg_bin: Optional[str] = None,
    ):
        self.store = store
        self.runner = runner or ProcessRunner()
        self.inspector = inspector or MediaInspector()
        self.processed_dir = processed_dir or settings.PROCESSED_DIR
        self.temp_dir = temp_dir or settings.UPLOAD_TEMP_DIR
        self.ffmpeg_bin = ffmpeg_bin or settings.FFMPEG_BIN

    def __call__(self, job: Job) -> bool:
        return self.process(job)

    def process(self, job: Job) -> bool:
        """returns True when the file ends up completed"""
        if self.store.get_file_record(job.file_id) is None:
            logger.warning(f"file {job.file_id} was deleted before processing, skipping")
            return False

        source_name = os.path.basename(job.source_path)
        started = time.monotonic()
        output_path = processed_output_path(job, self.processed_dir)

        try:
            self.store.update_file_record(
                job.file_id, status=FileStatus.PROCESSING, processing_progress=0
            )
            publish_log('worker', 'INFO', f'🎬 removing silence: {source_name}', {
                'file_id': job.file_id,
                'threshold_db': job.silence_threshold_db,
                'min_silence_ms': job.min_silence_duration_ms,
                'format': job.output_format.value,
            })

            with ExitStack() as cleanup:
                audio_path = job.source_path
                if job.is_video:
                    audio_path = self._extract_audio(job, cleanup)

                original_duration = self.inspector.probe_duration(audio_path)
                if original_duration is not None:
                    self.store.update_file_record(job.file_id, original_duration_sec=original_duration)

                os.makedirs(self.processed_dir, exist_ok=True)
                self.runner.run(
                    self.ffmpeg_bin,
                    silence_removal_args(
                        audio_path,
                        output_path,
                        job.silence_threshold_db,
                        job.min_silence_duration_ms,
                        job.output_format,
                    ),
                    total_duration_sec=original_duration,
                    on_progress=lambda percent: self.store.update_file_record(
                        job.file_id, processing_progress=percent
                    ),
                )

            processed_duration = self.inspector.probe_duration(output_path)
            elapsed_ms = int((time.monotonic() - started) * 1000)
            self._mark_completed(job.file_id, output_path, processed_duration, elapsed_ms)

            publish_log('worker', 'SUCCESS', f'✅ silence removed: {source_name}', {
                'file_id': job.file_id,
                'original_duration_sec': original_duration,
                'processed_duration_sec': processed_duration,
                'processing_time_ms': elapsed_ms,
            })
            logger.info(
                f"processed file {job.file_id} in {elapsed_ms}ms: "
                f"{original_duration}s -> {processed_duration}s"
            )
            return True

        except Exception as e:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            handle_worker_error(job.file_id, e)
            remove_file(output_path)
            self._mark_failed(job.file_id, elapsed_ms)
            publish_log('worker', 'ERROR', f'❌ processing failed: {source_name}', {
                'file_id': job.file_id,
                'error': str(e),
            })
            return False

    def _extract_audio(self, job: Job, cleanup: ExitStack) -> str:
        """decode the video's audio track to a wav that lives until the job scope exits"""
        os.makedirs(self.temp_dir, exist_ok=True)
        fd, wav_path = tempfile.mkstemp(prefix=f"extract_{job.file_id}_", suffix=".wav", dir=self.temp_dir)
        os.close(fd)
        cleanup.callback(remove_file, wav_path)

        logger.info(f"extracting audio from video for file {job.file_id}")
        self.runner.run(self.ffmpeg_bin, audio_extraction_args(job.source_path, wav_path))
        return wav_path

    @retry_with_backoff(max_retries=3, initial_delay=0.2)
    def _mark_completed(self, file_id: int, output_path: str, processed_duration: Optional[float], elapsed_ms: int):
        self.store.update_file_record(
            file_id,
            status=FileStatus.COMPLETED,
            processing_progress=100,
            processed_file_path=output_path,
            processed_duration_sec=processed_duration,
            processing_time_ms=elapsed_ms,
        )

    @retry_with_backoff(max_retries=3, initial_delay=0.2)
    def _mark_failed(self, file_id: int, elapsed_ms: int):
        self.store.update_file_record(
            file_id,
            status=FileStatus.FAILED,
            processing_time_ms=elapsed_ms,
        )
