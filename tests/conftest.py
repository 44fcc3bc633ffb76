"""
Global test fixtures for pastelink tests
"""
import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Generator

from pastelink.engine import ChannelEngine
from tests.fixtures.fake_transport import FakeChannel, FakeTransportFactory


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files"""
    path = Path(tempfile.mkdtemp(prefix="pastelink_test_"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def sample_file(temp_dir: Path) -> Path:
    """Create a sample text file for testing"""
    file_path = temp_dir / "sample.txt"
    file_path.write_text("Hello, World! This is a test file.")
    return file_path


@pytest.fixture
def large_sample_file(temp_dir: Path) -> Path:
    """Create a larger file for chunked transfer testing"""
    file_path = temp_dir / "large_sample.bin"
    # ~1MB of non-repeating-per-chunk data
    data = bytes(i % 251 for i in range(1024 * 1024 + 7))
    file_path.write_bytes(data)
    return file_path


@pytest.fixture
def sample_text() -> str:
    """Sample text for chat testing"""
    return "Hello, this is a pastelink chat message!"


@pytest.fixture
def open_channel() -> FakeChannel:
    """An open channel with nobody on the other end"""
    return FakeChannel(is_open=True)


@pytest.fixture
def events():
    """Collects engine callbacks by name"""
    return {"chat": [], "progress": [], "files": [], "errors": []}


@pytest.fixture
def engine(open_channel, events) -> ChannelEngine:
    """Engine with a small chunk size, attached to open_channel"""
    eng = ChannelEngine(
        chunk_size=10,
        on_chat=events["chat"].append,
        on_progress=lambda direction, name, percent: events["progress"].append((direction, name, percent)),
        on_file_received=events["files"].append,
        on_transfer_error=events["errors"].append
    )
    eng.attach(open_channel)
    return eng


@pytest.fixture
def host_factory() -> FakeTransportFactory:
    return FakeTransportFactory("host")


@pytest.fixture
def guest_factory() -> FakeTransportFactory:
    return FakeTransportFactory("guest")
