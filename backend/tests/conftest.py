import os
import tempfile

# point settings at throwaway locations before any quietcutter module is imported
_DATA_DIR = tempfile.mkdtemp(prefix="quietcutter-test-")
os.environ["DATA_DIR"] = _DATA_DIR
os.environ["LOG_DIR"] = os.path.join(_DATA_DIR, "logs")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DATA_DIR, 'app.db')}"
os.environ["REDIS_URL"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine

from quietcutter import models  # noqa: F401  registers tables
from quietcutter.api.deps import get_job_queue, get_status_store, get_tier_lookup
from quietcutter.core.db import get_session
from quietcutter.main import app
from quietcutter.models import User
from quietcutter.services.process_runner import ProcessResult
from quietcutter.services.queue import PriorityJobQueue
from quietcutter.services.status_store import SqlStatusStore
from quietcutter.services.tiers import TierLookup, DbTierLookup
from quietcutter.worker import SilenceRemovalJob


class FakeRunner:
    """stands in for ffmpeg: records calls, writes the output file, reports progress"""

    def __init__(self, progress=(10, 45, 80), error=None, fail_on_call=None):
        self.calls = []
        self.progress = progress
        self.error = error
        self.fail_on_call = fail_on_call

    def run(self, command, args, total_duration_sec=None, on_progress=None):
        self.calls.append({"command": command, "args": list(args), "total_duration_sec": total_duration_sec})
        if self.error is not None and (self.fail_on_call is None or self.fail_on_call == len(self.calls)):
            raise self.error

        with open(args[-1], "wb") as f:
            f.write(b"\x00" * 128)
        if on_progress is not None and total_duration_sec:
            for percent in self.progress:
                on_progress(percent)
        return ProcessResult(returncode=0, elapsed_sec=0.01, stderr_tail="")


class FakeInspector:
    """returns a fixed original duration and a shorter processed one"""

    def __init__(self, original=120.0, processed=90.0):
        self.original = original
        self.processed = processed
        self.probed = []

    def probe_duration(self, file_path):
        self.probed.append(file_path)
        if "_processed." in os.path.basename(file_path):
            return self.processed
        return self.original


class StaticTierLookup(TierLookup):
    def __init__(self, pro_users=()):
        self.pro_users = set(pro_users)
        self.lookups = []

    def is_paid_tier(self, user_id):
        self.lookups.append(user_id)
        return user_id in self.pro_users


@pytest.fixture(name="engine")
def engine_fixture(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="store")
def store_fixture(engine):
    return SqlStatusStore(engine)


@pytest.fixture(name="fake_runner")
def fake_runner_fixture():
    return FakeRunner()


@pytest.fixture(name="fake_inspector")
def fake_inspector_fixture():
    return FakeInspector()


@pytest.fixture(name="media_dirs")
def media_dirs_fixture(tmp_path):
    dirs = {name: tmp_path / name for name in ("uploads", "processed", "temp")}
    for path in dirs.values():
        path.mkdir()
    return dirs


@pytest.fixture(name="silence_job")
def silence_job_fixture(store, fake_runner, fake_inspector, media_dirs):
    return SilenceRemovalJob(
        store,
        runner=fake_runner,
        inspector=fake_inspector,
        processed_dir=str(media_dirs["processed"]),
        temp_dir=str(media_dirs["temp"]),
    )


@pytest.fixture(name="tier_lookup")
def tier_lookup_fixture():
    return StaticTierLookup(pro_users={"pro-user"})


@pytest.fixture(name="job_queue")
def job_queue_fixture(silence_job):
    queue = PriorityJobQueue(handler=silence_job)
    yield queue
    queue.wait_until_idle(timeout=10)


@pytest.fixture(name="client")
def client_fixture(engine, store, job_queue, tier_lookup):
    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_status_store] = lambda: store
    app.dependency_overrides[get_job_queue] = lambda: job_queue
    app.dependency_overrides[get_tier_lookup] = lambda: tier_lookup
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="make_project_file")
def make_project_file_fixture(store, media_dirs):
    """create a project with one file record whose original exists on disk"""
    def make(user_id="free-user", status="completed", **fields):
        project = store.create_project(
            user_id=user_id,
            name="episode",
            silence_threshold=-40,
            min_silence_duration=500,
            output_format="mp3",
        )
        original = media_dirs["uploads"] / f"original_{project.id}.mp3"
        original.write_bytes(b"\x01" * 256)
        values = dict(
            project_id=project.id,
            original_file_name="episode.mp3",
            original_file_path=str(original),
            status=status,
            silence_threshold=-40,
            min_silence_duration=500,
            output_format="mp3",
            file_type="audio",
            file_size_bytes=256,
        )
        values.update(fields)
        file_id = store.create_file_record(**values)
        return project, file_id
    return make


@pytest.fixture(name="db_tier_lookup")
def db_tier_lookup_fixture(engine):
    with Session(engine) as session:
        session.add(User(id="pro-user", email="pro@example.com", is_pro=True))
        session.add(User(id="free-user", email="free@example.com", is_pro=False))
        session.commit()
    return DbTierLookup(engine)
