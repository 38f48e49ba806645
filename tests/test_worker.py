"""Tests for per-job processing and the bounded dispatcher."""

from conftest import FakeRunner, posix_only
from mdirrun.models import Status
from mdirrun.worker import dispatch_run, process_job, resolve_job


def _main_log_lines(archiver):
    return archiver.main_log_path.read_text().splitlines()[1:]


class TestProcessJob:
    def test_missing_directory_fails_without_running(self, make_root, make_config, registry, archiver, fake_runner):
        root = make_root()
        config = make_config(root, retries=2)
        registry.register(["ghost"])

        record = process_job("ghost", config, registry, archiver, runner=fake_runner)

        assert record.status == Status.FAIL
        assert record.label == "FAIL"
        assert (record.attempts, record.max_attempts) == (0, 0)
        assert fake_runner.calls == []
        content = (archiver.log_dir / "ghost_error.txt").read_text()
        assert "Failed to access directory" in content
        assert "NOTE: Command output was empty" in content
        assert not (archiver.log_dir / "ghost_success.txt").exists()
        assert _main_log_lines(archiver)[0].startswith("STATUS: FAIL       |")
        assert registry.get("ghost").label == "FAIL"

    def test_file_instead_of_directory_fails(self, make_root, make_config, registry, archiver, fake_runner):
        root = make_root()
        (root / "afile").write_text("not a dir")
        registry.register(["afile"])

        record = process_job("afile", make_config(root), registry, archiver, runner=fake_runner)

        assert record.label == "FAIL"
        assert fake_runner.calls == []

    def test_all_commands_succeed(self, make_root, make_config, registry, archiver, fake_runner):
        root = make_root("a")
        config = make_config(root, "build --fast; test", retries=1)
        registry.register(["a"])

        record = process_job("a", config, registry, archiver, runner=fake_runner)

        assert record.label == "SUCCESS(1/2)"
        assert [argv for argv, _ in fake_runner.calls] == [["build", "--fast"], ["test"]]
        content = (archiver.log_dir / "a_success.txt").read_text()
        assert "Command: build --fast\nAttempts: 1/2\nOutput (stdout):\nbuild done\nNo output (stderr)\n" in content
        assert "Command: test\n" in content
        assert "Total execution time:" in content
        assert not (archiver.log_dir / "a_error.txt").exists()

    def test_success_reports_attempts_of_last_command(self, make_root, make_config, registry, archiver):
        root = make_root("a")
        runner = FakeRunner(attempts={"flaky": 2})
        registry.register(["a"])

        record = process_job("a", make_config(root, "setup; flaky", retries=2), registry, archiver, runner=runner)

        assert record.label == "SUCCESS(2/3)"

    def test_failure_skips_remaining_commands(self, make_root, make_config, registry, archiver):
        root = make_root("a")
        runner = FakeRunner(fail={"bad"})
        config = make_config(root, "ok1; bad arg; ok2", retries=1)
        registry.register(["a"])
        published = []
        registry.subscribe(published.append)

        record = process_job("a", config, registry, archiver, runner=runner)

        assert [argv[0] for argv, _ in runner.calls] == ["ok1", "bad"]
        assert record.label == "FAIL(2/2)"
        assert record.output == "bad: boom\n"
        assert record.command == "Failed to execute bad arg"
        processing = [r.step for r in published if r.status == Status.PROCESSING]
        assert processing == [1, 2]
        assert published[-1].status == Status.FAIL
        content = (archiver.log_dir / "a_error.txt").read_text()
        assert "Command: bad arg\n" in content
        assert "Error: exit status 1\n" in content
        assert "Attempts: 2/2\n" in content
        assert not (archiver.log_dir / "a_success.txt").exists()

    def test_processing_published_before_runner(self, make_root, make_config, registry, archiver):
        root = make_root("a")
        registry.register(["a"])
        seen = []

        def runner(argv, cwd, max_retries=0, *, backoff_unit=1.0):
            seen.append(registry.get("a"))
            return FakeRunner()(argv, cwd, max_retries)

        process_job("a", make_config(root, "one; two"), registry, archiver, runner=runner)

        assert [(r.status, r.step, r.total, r.command) for r in seen] == [
            (Status.PROCESSING, 1, 2, "one"),
            (Status.PROCESSING, 2, 2, "two"),
        ]

    def test_empty_command_list_is_success(self, make_root, make_config, registry, archiver, fake_runner):
        root = make_root("a")
        registry.register(["a"])

        record = process_job("a", make_config(root, ""), registry, archiver, runner=fake_runner)

        assert record.status == Status.SUCCESS
        assert record.label == "SUCCESS(0/1)"
        assert (archiver.log_dir / "a_success.txt").exists()


class TestEntryPoints:
    def test_first_existing_entry_point_wins(self, make_root, make_config):
        root = make_root("a/src", "a/functions")
        job = resolve_job("a", make_config(root, subdirs="functions;src"))
        assert job.path == root / "a" / "functions"

    def test_entry_point_order_decides(self, make_root, make_config):
        root = make_root("a/src", "a/functions")
        job = resolve_job("a", make_config(root, subdirs="src;functions"))
        assert job.path == root / "a" / "src"

    def test_no_match_keeps_job_directory(self, make_root, make_config):
        root = make_root("a/docs")
        (root / "a" / "src").write_text("a file, not a directory")
        job = resolve_job("a", make_config(root, subdirs="functions;src"))
        assert job.path == root / "a"

    @posix_only
    def test_commands_run_inside_entry_point(self, make_root, make_config, registry, archiver):
        root = make_root("a/src")
        config = make_config(root, "touch ran-here", subdirs="functions;src")
        registry.register(["a"])

        record = process_job("a", config, registry, archiver)

        assert record.label == "SUCCESS(1/1)"
        assert (root / "a" / "src" / "ran-here").exists()
        assert not (root / "a" / "ran-here").exists()


class TestDispatchRun:
    def test_concurrency_is_bounded(self, make_root, make_config, registry, archiver):
        names = [f"d{i}" for i in range(9)]
        root = make_root(*names)
        runner = FakeRunner(delay=0.05)

        records = dispatch_run(names, make_config(root, "work", concurrency=3), registry, archiver, runner=runner)

        assert 1 <= runner.peak <= 3
        assert [r.job_id for r in records] == names
        assert all(r.label == "SUCCESS(1/1)" for r in records)

    def test_failures_are_isolated(self, make_root, make_config, registry, archiver):
        root = make_root("a", "b")
        runner = FakeRunner(fail={"bad"})
        config = make_config(root, "ok", concurrency=2)

        records = dispatch_run(["a", "missing", "b"], config, registry, archiver, runner=runner)

        assert [r.label for r in records] == ["SUCCESS(1/1)", "FAIL", "SUCCESS(1/1)"]
        assert len(_main_log_lines(archiver)) == 3

    def test_crashing_job_is_marked_failed(self, make_root, make_config, registry, archiver):
        root = make_root("a", "b")
        runner = FakeRunner(crash={"explode"})

        def picky(argv, cwd, max_retries=0, *, backoff_unit=1.0):
            argv = ["explode"] if cwd.name == "a" else argv
            return runner(argv, cwd, max_retries)

        records = dispatch_run(["a", "b"], make_config(root, "ok"), registry, archiver, runner=picky)

        assert [r.status for r in records] == [Status.FAIL, Status.SUCCESS]
        assert any("FAIL" in line and "DIR: a" in line for line in _main_log_lines(archiver))
        assert records[0].output == "RuntimeError: runner blew up"
        content = (archiver.log_dir / "a_error.txt").read_text()
        assert "Internal error at step 1/1 (ok)" in content
        assert "RuntimeError: runner blew up" in content
        assert "Traceback" in content
        assert not (archiver.log_dir / "b_error.txt").exists()

    @posix_only
    def test_echo_scenario(self, make_root, make_config, registry, archiver):
        root = make_root("a", "b")

        records = dispatch_run(["a", "b"], make_config(root, "echo hi", concurrency=2), registry, archiver)

        assert [r.label for r in records] == ["SUCCESS(1/1)", "SUCCESS(1/1)"]
        lines = _main_log_lines(archiver)
        assert len([line for line in lines if line.startswith("STATUS: SUCCESS(1/1)")]) == 2
        assert (archiver.log_dir / "a_success.txt").exists()
        assert (archiver.log_dir / "b_success.txt").exists()
        assert "Output (stdout):\nhi\n" in (archiver.log_dir / "a_success.txt").read_text()

    @posix_only
    def test_false_scenario(self, make_root, make_config, registry, archiver):
        root = make_root("a", "b")

        records = dispatch_run(["a", "b"], make_config(root, "false", retries=2), registry, archiver)

        assert [r.label for r in records] == ["FAIL(3/3)", "FAIL(3/3)"]
        for name in ("a", "b"):
            content = (archiver.log_dir / f"{name}_error.txt").read_text()
            assert "Attempts: 3/3" in content
            for n in (1, 2, 3):
                assert f"Attempt {n}/3: exit status 1" in content
