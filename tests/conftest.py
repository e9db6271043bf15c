import pytest

from lineage_proxy.counters import FileCounterStore
from lineage_proxy.main import app
from lineage_proxy.services.allocator import Allocator, get_allocator
from lineage_proxy.sinks import FilesystemSink


@pytest.fixture
def allocator(tmp_path):
    """Filesystem-backed allocator wired into the app for the test's duration."""
    alloc = Allocator(FileCounterStore(tmp_path / "counter.txt"), FilesystemSink(tmp_path))
    app.dependency_overrides[get_allocator] = lambda: alloc
    yield alloc
    app.dependency_overrides.pop(get_allocator, None)
