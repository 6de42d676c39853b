import pytest

from config import settings
from libcatalog.library import Library


@pytest.fixture
def data_file(tmp_path, monkeypatch):
    # Every test gets its own snapshot file
    path = str(tmp_path / "library.dat")
    monkeypatch.setattr(settings, "data_file", path)
    monkeypatch.setattr(settings, "export_file", str(tmp_path / "library_export.csv"))
    return path


@pytest.fixture
def lib(data_file):
    return Library(data_file=data_file)
