import asyncio
import os
import time

import sweeper as sweeper_module
from sweeper import RetentionSweeper


def make_artifact(directory, name, age):
    path = directory / name
    path.write_bytes(b"data")
    stamp = time.time() - age
    os.utime(path, (stamp, stamp))
    return path


def test_sweep_deletes_only_old_artifacts(tmp_path):
    old = make_artifact(tmp_path, "old.txt", age=2 * 3600)
    fresh = make_artifact(tmp_path, "fresh.txt", age=60)

    deleted = RetentionSweeper(str(tmp_path), max_age=3600).sweep()

    assert deleted == ["old.txt"]
    assert not old.exists()
    assert fresh.exists()


def test_sweep_keeps_artifact_just_under_threshold(tmp_path):
    make_artifact(tmp_path, "edge.txt", age=0)
    now = os.path.getmtime(tmp_path / "edge.txt") + 3599.5

    assert RetentionSweeper(str(tmp_path), max_age=3600).sweep(now=now) == []


def test_sweep_missing_directory(tmp_path):
    assert RetentionSweeper(str(tmp_path / "nope")).sweep() == []


def test_sweep_skips_subdirectories(tmp_path):
    nested = tmp_path / "nested"
    nested.mkdir()
    stamp = time.time() - 10 * 3600
    os.utime(nested, (stamp, stamp))

    assert RetentionSweeper(str(tmp_path), max_age=3600).sweep() == []
    assert nested.exists()


def test_per_file_failure_does_not_abort_sweep(tmp_path, monkeypatch):
    make_artifact(tmp_path, "locked.txt", age=2 * 3600)
    make_artifact(tmp_path, "gone.txt", age=2 * 3600)
    other = make_artifact(tmp_path, "other.txt", age=2 * 3600)
    real_remove = os.remove

    def flaky_remove(path):
        name = os.path.basename(path)
        if name == "locked.txt":
            raise PermissionError("denied")
        if name == "gone.txt":
            raise FileNotFoundError(path)
        real_remove(path)

    monkeypatch.setattr(sweeper_module.os, "remove", flaky_remove)

    deleted = RetentionSweeper(str(tmp_path), max_age=3600).sweep()

    assert deleted == ["other.txt"]
    assert not other.exists()
    assert (tmp_path / "locked.txt").exists()


def test_background_task_sweeps_and_stops(tmp_path):
    old = make_artifact(tmp_path, "old.txt", age=2 * 3600)

    async def scenario():
        sweeper = RetentionSweeper(str(tmp_path), max_age=3600, interval=0.01)
        sweeper.start()
        assert sweeper.running
        for _ in range(200):
            if not old.exists():
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()
        assert not sweeper.running

    asyncio.run(scenario())
    assert not old.exists()


def test_stop_without_start_is_noop(tmp_path):
    asyncio.run(RetentionSweeper(str(tmp_path)).stop())
