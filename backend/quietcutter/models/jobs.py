"""In-memory job submitted to the priority queue."""

from pydantic import BaseModel, ConfigDict

from quietcutter.models.files import OutputFormat


class Job(BaseModel):
    """One admitted unit of processing work for a single uploaded file.

    Frozen once built: threshold, duration, format and priority are fixed at
    admission and do not follow later tier or settings changes.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    file_id: int
    source_path: str
    silence_threshold_db: int
    min_silence_duration_ms: int
    output_format: OutputFormat
    is_video: bool = False
    priority: bool = False
