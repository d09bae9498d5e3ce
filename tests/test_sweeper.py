"""
Unit Tests: retention sweep
"""
import asyncio

from otasign.sweeper import RetentionSweeper, sweep_directory


class TestSweepDirectory:

    def test_removes_regular_files_only(self, tmp_path):
        (tmp_path / "a.ipa").write_bytes(b"a")
        (tmp_path / "b.ipa").write_bytes(b"b")
        sub = tmp_path / "keep"
        sub.mkdir()
        (sub / "nested.ipa").write_bytes(b"n")

        assert sweep_directory(tmp_path) == 2
        assert sorted(p.name for p in tmp_path.iterdir()) == ["keep"]
        assert (sub / "nested.ipa").exists()

    def test_empty_directory(self, tmp_path):
        assert sweep_directory(tmp_path) == 0

    def test_missing_directory_is_logged_not_raised(self, tmp_path, caplog):
        with caplog.at_level("ERROR", logger="otasign.sweeper"):
            assert sweep_directory(tmp_path / "missing") == 0
        assert "Failed to read directory" in caplog.text

    def test_symlink_target_survives(self, tmp_path):
        outside = tmp_path / "outside.txt"
        outside.write_text("keep me")
        public = tmp_path / "public"
        public.mkdir()
        (public / "link").symlink_to(outside)

        sweep_directory(public)
        assert outside.read_text() == "keep me"


class TestRetentionSweeper:

    def test_runs_periodically_and_stops(self, tmp_path):
        async def scenario():
            sweeper = RetentionSweeper(tmp_path, interval=0.05)
            sweeper.start()
            assert sweeper.running
            (tmp_path / "a.ipa").write_bytes(b"a")
            for _ in range(100):
                await asyncio.sleep(0.02)
                if not (tmp_path / "a.ipa").exists():
                    break
            await sweeper.stop()
            return sweeper

        sweeper = asyncio.run(scenario())
        assert not (tmp_path / "a.ipa").exists()
        assert sweeper.cycle_count >= 1
        assert not sweeper.running

    def test_start_is_idempotent(self, tmp_path):
        async def scenario():
            sweeper = RetentionSweeper(tmp_path, interval=3600)
            sweeper.start()
            task = sweeper._task
            sweeper.start()
            same = sweeper._task is task
            await sweeper.stop()
            return same

        assert asyncio.run(scenario()) is True

    def test_stop_without_start(self, tmp_path):
        asyncio.run(RetentionSweeper(tmp_path, interval=1).stop())

    def test_survives_missing_directory(self, tmp_path):
        async def scenario():
            sweeper = RetentionSweeper(tmp_path / "gone", interval=0.02)
            sweeper.start()
            await asyncio.sleep(0.15)
            alive = sweeper.running
            await sweeper.stop()
            return alive

        assert asyncio.run(scenario()) is True
