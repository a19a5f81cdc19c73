import errno
import logging
import pathlib
import shutil

import pytest

from folder_mirror.config import WatchDefinition
from folder_mirror.copier import FileCopier, is_transient
from folder_mirror.debounce import Debouncer


def _busy():
    return OSError(errno.EBUSY, "Device or resource busy")


class FlakyCopy:
    """Copy function that fails *failures* times before delegating to shutil."""

    def __init__(self, failures, exc_factory=_busy):
        self.failures = failures
        self.exc_factory = exc_factory
        self.calls = 0

    def __call__(self, src, dst):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc_factory()
        return shutil.copy2(src, dst)


def test_copies_file_preserving_structure(copier, make_definition, roots):
    src, dst = roots
    nested = src / "a" / "b"
    nested.mkdir(parents=True)
    (nested / "note.txt").write_bytes(b"hello\x00world")

    assert copier.copy(nested / "note.txt", make_definition()) is True

    out = dst / "a" / "b" / "note.txt"
    assert out.read_bytes() == b"hello\x00world"
    assert copier.stats.total_copied == 1


def test_missing_source_is_a_noop(copier, make_definition, roots, sleeper):
    src, dst = roots
    assert copier.copy(src / "gone.txt", make_definition()) is False
    assert list(dst.iterdir()) == []
    assert sleeper.calls == []
    assert copier.stats.total_failed == 0


def test_extension_filter_rejects_other_files(copier, make_definition, roots):
    src, dst = roots
    (src / "image.png").write_bytes(b"png")
    (src / "sub").mkdir()
    (src / "sub" / "x.bin").write_bytes(b"bin")
    definition = make_definition(extensions=[".txt"])

    assert copier.copy(src / "image.png", definition) is False
    assert copier.copy(src / "sub" / "x.bin", definition) is False
    assert list(dst.rglob("*")) == []


def test_extension_filter_is_case_insensitive(copier, make_definition, roots):
    src, dst = roots
    (src / "REPORT.TXT").write_text("x")
    assert copier.copy(src / "REPORT.TXT", make_definition(extensions=[".Txt"])) is True
    assert (dst / "REPORT.TXT").exists()


def test_overwrites_existing_destination(copier, make_definition, roots):
    src, dst = roots
    (src / "f.txt").write_text("new")
    (dst / "f.txt").write_text("old content that is longer")
    assert copier.copy(src / "f.txt", make_definition()) is True
    assert (dst / "f.txt").read_text() == "new"


def test_remove_before_copy_deletes_destination_first(debouncer, sleeper, make_definition, roots):
    src, dst = roots
    (src / "f.txt").write_text("fresh")
    marker = dst / "f.txt"
    marker.write_text("MARKER-OLD-CONTENT")
    seen = []

    def copy_function(s, d):
        seen.append(pathlib.Path(d).exists())
        return shutil.copy2(s, d)

    copier = FileCopier(debouncer, copy_function=copy_function, sleep=sleeper)
    assert copier.copy(src / "f.txt", make_definition(remove_before_copy=True)) is True

    assert seen == [False]
    assert marker.read_text() == "fresh"


def test_settle_delay_applies_once(debouncer, sleeper, make_definition, roots):
    src, dst = roots
    (src / "f.txt").write_text("data")
    flaky = FlakyCopy(failures=2)
    copier = FileCopier(debouncer, copy_function=flaky, sleep=sleeper)

    assert copier.copy(src / "f.txt", make_definition(delay=3)) is True
    assert sleeper.calls == [3, 0.5, 0.5]


def test_transient_failures_then_success(debouncer, sleeper, make_definition, roots):
    src, dst = roots
    (src / "f.txt").write_text("final content")
    flaky = FlakyCopy(failures=4)
    copier = FileCopier(debouncer, copy_function=flaky, sleep=sleeper)

    assert copier.copy(src / "f.txt", make_definition()) is True
    assert flaky.calls == 5
    assert (dst / "f.txt").read_text() == "final content"


def test_gives_up_after_five_transient_failures(debouncer, sleeper, make_definition, roots, caplog):
    src, dst = roots
    (src / "f.txt").write_text("data")
    flaky = FlakyCopy(failures=99)
    copier = FileCopier(debouncer, copy_function=flaky, sleep=sleeper)

    with caplog.at_level(logging.INFO, logger="folder_mirror.copier"):
        assert copier.copy(src / "f.txt", make_definition()) is False

    assert flaky.calls == 5
    assert not (dst / "f.txt").exists()
    assert "Failed to copy: f.txt after 5 attempts." in caplog.text
    assert copier.stats.total_failed == 1
    # Pauses only between attempts.
    assert sleeper.calls == [0, 0.5, 0.5, 0.5, 0.5]


def test_permanent_failure_aborts_immediately(debouncer, sleeper, make_definition, roots, caplog):
    src, dst = roots
    (src / "f.txt").write_text("data")
    flaky = FlakyCopy(failures=99, exc_factory=lambda: PermissionError(errno.EACCES, "denied"))
    copier = FileCopier(debouncer, copy_function=flaky, sleep=sleeper)

    with caplog.at_level(logging.ERROR, logger="folder_mirror.copier"):
        assert copier.copy(src / "f.txt", make_definition()) is False

    assert flaky.calls == 1
    assert "Error copying f.txt" in caplog.text


def test_unexpected_exception_does_not_escape(debouncer, sleeper, make_definition, roots):
    src, _ = roots
    (src / "f.txt").write_text("data")

    def broken(s, d):
        raise RuntimeError("boom")

    copier = FileCopier(debouncer, copy_function=broken, sleep=sleeper)
    assert copier.copy(src / "f.txt", make_definition()) is False


def test_successful_copy_refreshes_debounce_entry(copier, debouncer, make_definition, roots):
    src, _ = roots
    (src / "f.txt").write_text("data")
    definition = make_definition()
    copier.copy(src / "f.txt", definition)
    assert debouncer.should_suppress(Debouncer.key_for(definition, src / "f.txt")) is True


def test_rename_deletes_old_then_copies_new(copier, make_definition, roots):
    src, dst = roots
    (src / "old").mkdir()
    (dst / "old").mkdir()
    (dst / "old" / "a.txt").write_text("stale")
    (src / "old" / "b.txt").write_text("renamed")

    assert copier.rename(src / "old" / "a.txt", src / "old" / "b.txt", make_definition()) is True

    assert not (dst / "old" / "a.txt").exists()
    assert (dst / "old" / "b.txt").read_text() == "renamed"
    assert copier.stats.total_deleted == 1


def test_rename_copies_even_if_delete_fails(copier, make_definition, roots, monkeypatch, caplog):
    src, dst = roots
    (dst / "a.txt").write_text("stale")
    (src / "b.txt").write_text("renamed")
    real_unlink = pathlib.Path.unlink

    def failing_unlink(self, missing_ok=False):
        if self.name == "a.txt":
            raise PermissionError(errno.EACCES, "locked")
        return real_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(pathlib.Path, "unlink", failing_unlink)

    with caplog.at_level(logging.ERROR, logger="folder_mirror.copier"):
        assert copier.rename(src / "a.txt", src / "b.txt", make_definition()) is True

    assert "Error deleting old file" in caplog.text
    assert (dst / "b.txt").read_text() == "renamed"


def test_delete_missing_destination_is_not_an_error(copier, make_definition, roots, caplog):
    src, _ = roots
    with caplog.at_level(logging.ERROR):
        assert copier.delete_from_destination(src / "nothing.txt", make_definition()) is False
    assert caplog.text == ""


def test_directory_at_destination_is_not_copied_into(copier, make_definition, roots, caplog):
    src, dst = roots
    (src / "f.txt").write_text("data")
    (dst / "f.txt").mkdir()

    with caplog.at_level(logging.ERROR, logger="folder_mirror.copier"):
        assert copier.copy(src / "f.txt", make_definition()) is False

    assert not (dst / "f.txt" / "f.txt").exists()
    assert "Error copying f.txt" in caplog.text
    assert copier.stats.total_copied == 0


def test_same_file_aborts_without_retry(debouncer, sleeper, roots):
    src, _ = roots
    (src / "f.txt").write_text("data")
    definition = WatchDefinition(src, src, settle_delay_seconds=0)
    copier = FileCopier(debouncer, sleep=sleeper)

    assert copier.copy(src / "f.txt", definition) is False
    assert sleeper.calls == [0]
    assert (src / "f.txt").read_text() == "data"


def test_remove_before_copy_repeats_on_every_retry(debouncer, sleeper, make_definition, roots, monkeypatch):
    src, dst = roots
    (src / "f.txt").write_text("fresh")
    marker = dst / "f.txt"
    marker.write_text("MARKER")
    unlinked = []
    real_unlink = pathlib.Path.unlink

    def recording_unlink(self, missing_ok=False):
        unlinked.append(self.name)
        return real_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(pathlib.Path, "unlink", recording_unlink)
    calls = []

    def recreating_copy(s, d):
        calls.append(pathlib.Path(d).exists())
        if len(calls) <= 2:
            # A half-written file reappears before the copy fails.
            pathlib.Path(d).write_text("MARKER")
            raise _busy()
        return shutil.copy2(s, d)

    copier = FileCopier(debouncer, copy_function=recreating_copy, sleep=sleeper)
    assert copier.copy(src / "f.txt", make_definition(remove_before_copy=True)) is True

    assert unlinked == ["f.txt", "f.txt", "f.txt"]
    assert calls == [False, False, False]
    assert marker.read_text() == "fresh"


def test_transient_unlink_failure_defers_settle_delay(debouncer, sleeper, make_definition, roots, monkeypatch):
    src, dst = roots
    (src / "f.txt").write_text("fresh")
    (dst / "f.txt").write_text("locked")
    real_unlink = pathlib.Path.unlink
    failures = [_busy()]

    def flaky_unlink(self, missing_ok=False):
        if failures:
            raise failures.pop()
        return real_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(pathlib.Path, "unlink", flaky_unlink)
    copier = FileCopier(debouncer, sleep=sleeper)

    assert copier.copy(src / "f.txt", make_definition(remove_before_copy=True, delay=2)) is True
    assert sleeper.calls == [0.5, 2]
    assert (dst / "f.txt").read_text() == "fresh"


@pytest.mark.parametrize(
    "exc, expected",
    [
        (OSError(errno.EBUSY, "busy"), True),
        (OSError(errno.EIO, "io"), True),
        (FileNotFoundError(errno.ENOENT, "gone"), True),
        (PermissionError(errno.EACCES, "denied"), False),
        (IsADirectoryError(errno.EISDIR, "dir"), False),
        (shutil.SameFileError("same file"), False),
        (ValueError("nope"), False),
    ],
)
def test_is_transient(exc, expected):
    assert is_transient(exc) is expected
