import os
import pytest
from quietcutter.core.errors import (
    BatchTooLargeError,
    BatchUploadNotAllowedError,
    FileTooLargeError,
    NoFilesError,
    UnsupportedMediaError,
)
from quietcutter.models import FileType, OutputFormat
from quietcutter.services.admission import (
    AdmissionLimits,
    check_batch_size,
    detect_file_type,
    evaluate_admission,
    evict_oldest_project,
)

MB = 1024 * 1024
LIMITS = AdmissionLimits(
    free_max_file_bytes=100 * MB,
    pro_max_file_bytes=500 * MB,
    pro_max_batch_files=3,
    free_max_projects=3,
    default_output_format=OutputFormat.MP3,
)


@pytest.mark.parametrize("is_paid, ceiling", [(False, 100 * MB), (True, 500 * MB)])
def test_file_at_ceiling_is_accepted(is_paid, ceiling):
    decision = evaluate_admission(is_paid, [ceiling], project_count=0, limits=LIMITS)
    assert decision.priority == is_paid


@pytest.mark.parametrize("is_paid, ceiling", [(False, 100 * MB), (True, 500 * MB)])
def test_one_byte_over_ceiling_is_rejected(is_paid, ceiling):
    with pytest.raises(FileTooLargeError) as exc:
        evaluate_admission(is_paid, [ceiling + 1], project_count=0, limits=LIMITS)
    assert exc.value.limit_bytes == ceiling
    assert exc.value.status_code == 413


def test_oversized_free_upload_message_names_limit():
    with pytest.raises(FileTooLargeError) as exc:
        evaluate_admission(False, [150 * MB], project_count=0, limits=LIMITS)
    assert "100 MB" in str(exc.value)


def test_size_is_checked_before_batch_entitlement():
    """a free batch with an oversized file reports the size problem first"""
    with pytest.raises(FileTooLargeError):
        evaluate_admission(False, [MB, 200 * MB], project_count=0, limits=LIMITS)


def test_free_batch_is_rejected():
    with pytest.raises(BatchUploadNotAllowedError) as exc:
        evaluate_admission(False, [MB, MB], project_count=0, limits=LIMITS)
    assert exc.value.status_code == 403


def test_pro_batch_is_capped():
    decision = evaluate_admission(True, [MB] * 3, project_count=10, limits=LIMITS)
    assert decision.priority is True

    with pytest.raises(BatchTooLargeError):
        evaluate_admission(True, [MB] * 4, project_count=0, limits=LIMITS)


def test_batch_size_check_needs_only_the_count():
    check_batch_size(False, 1, LIMITS)
    check_batch_size(True, 3, LIMITS)

    with pytest.raises(BatchUploadNotAllowedError):
        check_batch_size(False, 2, LIMITS)
    with pytest.raises(BatchTooLargeError) as exc:
        check_batch_size(True, 4, LIMITS)
    assert exc.value.limit == 3


def test_empty_batch_is_rejected():
    with pytest.raises(NoFilesError):
        evaluate_admission(True, [], project_count=0, limits=LIMITS)


def test_free_user_at_project_ceiling_evicts_instead_of_rejecting():
    assert evaluate_admission(False, [MB], project_count=2, limits=LIMITS).evict_oldest_project is False
    assert evaluate_admission(False, [MB], project_count=3, limits=LIMITS).evict_oldest_project is True
    assert evaluate_admission(False, [MB], project_count=5, limits=LIMITS).evict_oldest_project is True


def test_pro_user_never_evicts():
    assert evaluate_admission(True, [MB], project_count=50, limits=LIMITS).evict_oldest_project is False


def test_output_format_only_honored_for_paid():
    free = evaluate_admission(False, [MB], 0, requested_format=OutputFormat.FLAC, limits=LIMITS)
    pro = evaluate_admission(True, [MB], 0, requested_format=OutputFormat.FLAC, limits=LIMITS)
    assert free.output_format == OutputFormat.MP3
    assert pro.output_format == OutputFormat.FLAC


def test_limits_default_to_settings(monkeypatch):
    from quietcutter.core.config import settings
    monkeypatch.setattr(settings, "FREE_MAX_FILE_BYTES", 10)
    assert AdmissionLimits().free_max_file_bytes == 10


@pytest.mark.parametrize("filename, content_type, expected", [
    ("talk.mp3", "audio/mpeg", FileType.AUDIO),
    ("talk.FLAC", None, FileType.AUDIO),
    ("clip.mp4", "video/mp4", FileType.VIDEO),
    ("clip.mov", "application/octet-stream", FileType.VIDEO),
    ("unknown.bin", "audio/ogg", FileType.AUDIO),
])
def test_detect_file_type(filename, content_type, expected):
    assert detect_file_type(filename, content_type) == expected


def test_detect_file_type_rejects_non_media():
    with pytest.raises(UnsupportedMediaError):
        detect_file_type("notes.txt", "text/plain")


def _project_with_files(store, tmp_path, user_id, name):
    project = store.create_project(user_id, name, -40, 500, "mp3")
    original = tmp_path / f"{name}.mp3"
    processed = tmp_path / f"{name}_processed.mp3"
    original.write_bytes(b"a")
    processed.write_bytes(b"b")
    store.create_file_record(
        project_id=project.id,
        original_file_name=f"{name}.mp3",
        original_file_path=str(original),
        processed_file_path=str(processed),
        status="completed",
    )
    return project, original, processed


def test_evict_oldest_project_removes_files_and_records(store, tmp_path):
    oldest, original, processed = _project_with_files(store, tmp_path, "free-user", "first")
    newer, newer_original, _ = _project_with_files(store, tmp_path, "free-user", "second")
    _project_with_files(store, tmp_path, "someone-else", "third")

    evicted = evict_oldest_project(store, "free-user")

    assert evicted == oldest.id
    assert store.get_project(oldest.id) is None
    assert store.list_project_files(oldest.id) == []
    assert not original.exists()
    assert not processed.exists()
    assert store.get_project(newer.id) is not None
    assert newer_original.exists()
    assert store.count_projects("someone-else") == 1


def test_eviction_with_files_already_missing_still_removes_record(store, tmp_path):
    project, original, processed = _project_with_files(store, tmp_path, "free-user", "gone")
    os.remove(original)
    os.remove(processed)

    assert evict_oldest_project(store, "free-user") == project.id
    assert store.get_project(project.id) is None
    assert store.count_projects("free-user") == 0


def test_eviction_without_projects_is_a_no_op(store):
    assert evict_oldest_project(store, "nobody") is None
