"""Shared fakes: in-memory object store, scripted media engine, fake Redis."""

from __future__ import annotations

import io
import threading
import uuid
from pathlib import Path

import pytest
import redis

from vpipe.core.config import VPipeConfig
from vpipe.core.exceptions import NotFoundError, ProbeError, StoreError, TranscodeError
from vpipe.db.models import VideoRecord
from vpipe.db.repository import Repository
from vpipe.pipeline.ffmpeg import MediaMeta, SpriteSheet, sprite_geometry


class FakeObjectStore:
    """Dict-backed store. `fail_on` makes put() raise for keys starting with any of its prefixes."""

    base_url = "https://cdn.test"

    def __init__(self, fail_on: tuple[str, ...] = ()):
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.deleted: list[str] = []
        self.puts: list[str] = []
        self.fail_on = fail_on

    def get(self, key):
        if key not in self.objects:
            raise NotFoundError(f"Object not found: {key}")
        return io.BytesIO(self.objects[key])

    def put(self, key, data, content_type):
        if any(key.startswith(p) for p in self.fail_on):
            raise StoreError(f"put {key} rejected")
        self.objects[key] = data if isinstance(data, bytes) else data.read()
        self.content_types[key] = content_type
        self.puts.append(key)
        return self.public_url(key)

    def delete(self, key):
        self.deleted.append(key)
        self.objects.pop(key, None)

    def public_url(self, key):
        return f"{self.base_url}/{key}"

    def download_to(self, key, path: Path) -> Path:
        body = self.get(key)
        path.write_bytes(body.read())
        return path

    def upload_file(self, path: Path, key, content_type):
        with open(path, "rb") as f:
            return self.put(key, f, content_type)


class FakeMediaEngine:
    """Writes placeholder output files and records which derivatives were requested."""

    def __init__(self, meta: MediaMeta | None = None, fail: str | None = None):
        self.meta = meta or MediaMeta(duration_sec=120.0, width=1920, height=1080, fps=30.0, bitrate=10_000_000)
        self.fail = fail
        self.calls: list[str] = []
        self.workdirs: set[Path] = set()

    def _step(self, name: str, output_path: Path) -> Path:
        self.calls.append(name)
        self.workdirs.add(output_path.parent)
        if self.fail == name:
            raise TranscodeError(f"{name} failed", cmd=f"ffmpeg {name}", returncode=1)
        output_path.write_bytes(name.encode())
        return output_path

    def probe(self, path: Path) -> MediaMeta:
        self.calls.append("probe")
        self.workdirs.add(path.parent)
        if self.fail == "probe":
            raise ProbeError(f"Not a media container: {path.name}")
        return self.meta

    def extract_thumbnail(self, video_path, output_path, at_seconds=None, duration_sec=None):
        return self._step("thumbnail", output_path)

    def generate_proxy(self, video_path, output_path):
        return self._step("proxy", output_path)

    def generate_streaming_high(self, video_path, output_path, target_bitrate_kbps):
        self.target_bitrate_kbps = target_bitrate_kbps
        return self._step("streaming_high", output_path)

    def generate_sprite_sheet(self, video_path, output_path, *, interval_seconds, columns, thumb_width,
                              duration=None, width=None, height=None):
        self._step("sprite", output_path)
        geo = sprite_geometry(duration, interval_seconds, columns, thumb_width, width, height)
        return SpriteSheet(
            path=output_path,
            columns=geo["columns"],
            rows=geo["rows"],
            thumb_width=geo["thumb_width"],
            thumb_height=geo["thumb_height"],
            interval_seconds=interval_seconds,
            duration=geo["duration"],
            total_frames=geo["total_frames"],
        )


class FakePipeline:
    """Buffers commands and applies them together on execute(), like MULTI/EXEC."""

    def __init__(self, client: FakeRedis):
        self.client = client
        self.commands: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name):
        def buffered(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self

        return buffered

    def execute(self):
        self.client._check()
        if self.client.fail_exec:
            raise redis.exceptions.ConnectionError("Connection lost during EXEC")
        with self.client._lock:
            return [getattr(self.client, name)(*args, **kwargs) for name, args, kwargs in self.commands]


class FakeRedis:
    """Just enough of redis.Redis for RedisJobQueue (lists, sorted sets, MULTI pipelines, ping)."""

    def __init__(self, down: bool = False):
        self.lists: dict[str, list[str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.down = down
        self.fail_exec = False
        self._lock = threading.RLock()

    def _check(self):
        if self.down:
            raise redis.exceptions.ConnectionError("Connection refused")

    def ping(self):
        self._check()
        return True

    def lpush(self, key, value):
        self._check()
        self.lists.setdefault(key, []).insert(0, value)
        return len(self.lists[key])

    def brpoplpush(self, src, dst, timeout=0):
        self._check()
        with self._lock:
            items = self.lists.get(src) or []
            if not items:
                return None
            value = items.pop()
            self.lists.setdefault(dst, []).insert(0, value)
            return value

    def lrem(self, key, count, value):
        self._check()
        items = self.lists.get(key, [])
        if value in items:
            items.remove(value)
            return 1
        return 0

    def llen(self, key):
        self._check()
        return len(self.lists.get(key, []))

    def zadd(self, key, mapping, xx=False):
        self._check()
        zset = self.zsets.setdefault(key, {})
        if xx:
            mapping = {m: s for m, s in mapping.items() if m in zset}
        added = sum(1 for m in mapping if m not in zset)
        zset.update(mapping)
        return added

    def zscore(self, key, member):
        self._check()
        return self.zsets.get(key, {}).get(member)

    def zrangebyscore(self, key, lo, hi):
        self._check()
        return sorted(
            (m for m, s in self.zsets.get(key, {}).items() if lo <= s <= hi),
            key=lambda m: self.zsets[key][m],
        )

    def zrem(self, key, member):
        self._check()
        return 1 if self.zsets.get(key, {}).pop(member, None) is not None else 0

    def zcard(self, key):
        self._check()
        return len(self.zsets.get(key, {}))

    def pipeline(self, transaction=True):
        return FakePipeline(self)


@pytest.fixture()
def config(tmp_path: Path) -> VPipeConfig:
    return VPipeConfig(
        db_path=tmp_path / "test.db",
        temp_dir=tmp_path / "work",
        r2_bucket="test-bucket",
        r2_public_url=FakeObjectStore.base_url,
    )


@pytest.fixture()
def repo(tmp_path: Path) -> Repository:
    r = Repository(tmp_path / "test.db")
    yield r
    r.close()


@pytest.fixture()
def store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture()
def engine() -> FakeMediaEngine:
    return FakeMediaEngine()


@pytest.fixture()
def make_video(repo: Repository, store: FakeObjectStore):
    """Insert an 'uploaded' video whose source object exists in the store."""

    def _make(project_id: str = "proj-1", **fields) -> VideoRecord:
        video_id = str(uuid.uuid4())
        source_key = f"videos/{project_id}/{uuid.uuid4()}-clip.mp4"
        store.objects[source_key] = b"\x00" * 256
        video = VideoRecord(
            id=video_id,
            project_id=project_id,
            title="clip",
            original_filename="clip.mp4",
            source_key=source_key,
            source_url=store.public_url(source_key),
            **fields,
        )
        repo.insert_video(video)
        return video

    return _make
