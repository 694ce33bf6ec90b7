import os

MB = 1024 * 1024

class Settings:
    PROJECT_NAME: str = "QuietCutter"
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://postgres:postgres@db:5432/quietcutter")
    REDIS_URL: str = os.getenv("REDIS_URL", "")  # empty disables live log publishing

    # storage paths
    DATA_DIR: str = os.getenv("DATA_DIR", "/data")
    UPLOADS_DIR: str = os.path.join(DATA_DIR, "uploads")
    UPLOAD_TEMP_DIR: str = os.path.join(DATA_DIR, "uploads_temp")
    PROCESSED_DIR: str = os.path.join(DATA_DIR, "processed")
    LOG_DIR: str = os.getenv("LOG_DIR", "/var/log/quietcutter")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # external media tools
    FFMPEG_BIN: str = os.getenv("FFMPEG_BIN", "ffmpeg")
    FFPROBE_BIN: str = os.getenv("FFPROBE_BIN", "ffprobe")

    # admission limits
    FREE_MAX_FILE_BYTES: int = int(os.getenv("FREE_MAX_FILE_BYTES", str(100 * MB)))
    PRO_MAX_FILE_BYTES: int = int(os.getenv("PRO_MAX_FILE_BYTES", str(500 * MB)))
    PRO_MAX_BATCH_FILES: int = int(os.getenv("PRO_MAX_BATCH_FILES", "3"))
    FREE_MAX_PROJECTS: int = int(os.getenv("FREE_MAX_PROJECTS", "3"))
    DEFAULT_OUTPUT_FORMAT: str = os.getenv("DEFAULT_OUTPUT_FORMAT", "mp3")
    DEFAULT_SILENCE_THRESHOLD_DB: int = -40
    DEFAULT_MIN_SILENCE_DURATION_MS: int = 500

    # processing
    PROCESS_TIMEOUT_SEC: float = float(os.getenv("PROCESS_TIMEOUT_SEC", "600"))  # 10 minutes
    PROGRESS_THROTTLE_SEC: float = float(os.getenv("PROGRESS_THROTTLE_SEC", "0.5"))
    QUEUE_WORKER_COUNT: int = int(os.getenv("QUEUE_WORKER_COUNT", "1"))
    EXTRACT_SAMPLE_RATE: int = 44100
    EXTRACT_CHANNELS: int = 2
    MP3_BITRATE: str = "320k"

    # retention
    FILE_RETENTION_DAYS: int = int(os.getenv("FILE_RETENTION_DAYS", "7"))

settings = Settings()
