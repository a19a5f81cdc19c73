"""Shared test fixtures for Folder Mirror."""

import logging

import pytest

from folder_mirror.config import WatchDefinition, normalize_extensions
from folder_mirror.copier import FileCopier
from folder_mirror.debounce import Debouncer


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def roots(tmp_path):
    src = tmp_path / "src"
    dst = tmp_path / "dst"
    src.mkdir()
    dst.mkdir()
    return src, dst


@pytest.fixture
def make_definition(roots):
    src, dst = roots

    def _make(extensions=None, remove_before_copy=False, delay=0):
        return WatchDefinition(
            source_root=src,
            destination_root=dst,
            extensions=normalize_extensions(extensions),
            remove_before_copy=remove_before_copy,
            settle_delay_seconds=delay,
        )

    return _make


@pytest.fixture
def debouncer():
    return Debouncer()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def copier(debouncer, sleeper):
    return FileCopier(debouncer, sleep=sleeper)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
