# tests/test_logging_config.py

"""Tests for the per-run logging configuration."""

import logging
import unittest
from pathlib import Path
from unittest.mock import patch

from gamedeals.config.logging_config import setup_logging
from gamedeals.config.settings import Settings


def _handlers() -> list[logging.Handler]:
    return list(logging.getLogger("gamedeals").handlers)


def _console_handlers() -> list[logging.Handler]:
    return [
        h
        for h in _handlers()
        if isinstance(h, logging.StreamHandler)
        and not isinstance(h, logging.FileHandler)
    ]


class TestLoggingConfig(unittest.TestCase):
    """Verify logging setup behaviour."""

    def setUp(self) -> None:
        self._reset()

    def tearDown(self) -> None:
        self._reset()

    def _reset(self) -> None:
        root_logger = logging.getLogger("gamedeals")
        for handler in list(root_logger.handlers):
            handler.close()
            root_logger.removeHandler(handler)

    def test_setup_creates_run_file(self) -> None:
        log_path = setup_logging()
        self.assertTrue(log_path.exists())
        self.assertEqual(log_path.parent, Settings.LOGS_DIR)
        self.assertRegex(log_path.name, r"^run_\d{8}_\d{6}\.log$")

    def test_headless_run_echoes_warnings_to_stderr(self) -> None:
        setup_logging(console=True)
        consoles = _console_handlers()
        self.assertEqual(len(consoles), 1)
        self.assertEqual(consoles[0].level, logging.WARNING)

    def test_tui_run_logs_to_file_only(self) -> None:
        """With Textual on screen nothing may write to the terminal."""
        setup_logging(console=False)
        self.assertEqual(_console_handlers(), [])
        file_handlers = [
            h for h in _handlers() if isinstance(h, logging.FileHandler)
        ]
        self.assertEqual(len(file_handlers), 1)
        self.assertEqual(file_handlers[0].level, logging.DEBUG)

    def test_repeated_setup_returns_same_file(self) -> None:
        first = setup_logging()
        second = setup_logging(console=False)
        self.assertEqual(first, second)
        self.assertEqual(len(_handlers()), 2)

    def test_first_line_records_request_budget(self) -> None:
        log_path = setup_logging(console=False)
        for handler in _handlers():
            handler.flush()
        first_line = log_path.read_text(encoding="utf-8").splitlines()[0]
        self.assertIn(f"policy={Settings.RATE_LIMIT_POLICY}", first_line)
        self.assertIn(f"country={Settings.COUNTRY}", first_line)

    def test_old_runs_are_pruned(self) -> None:
        logs_dir: Path = Settings.LOGS_DIR
        logs_dir.mkdir(parents=True, exist_ok=True)
        old = [logs_dir / f"run_2025010{i}_120000.log" for i in range(1, 6)]
        for path in old:
            path.write_text("old run\n", encoding="utf-8")
        (logs_dir / "notes.txt").write_text("keep me\n", encoding="utf-8")

        with patch.object(Settings, "LOG_KEEP_RUNS", 3):
            log_path = setup_logging(console=False)

        runs = sorted(logs_dir.glob("run_*.log"))
        self.assertEqual(len(runs), 3)
        self.assertIn(log_path, runs)
        # The two newest old runs survive
        self.assertEqual(runs[:2], old[3:])
        self.assertTrue((logs_dir / "notes.txt").exists())

    def test_child_logger_writes_to_run_file(self) -> None:
        """Module loggers under gamedeals.* land in the per-run file."""
        log_path = setup_logging(console=False)
        logging.getLogger("gamedeals.coordinator").debug("generation 7 dropped")
        for handler in _handlers():
            handler.flush()
        content = log_path.read_text(encoding="utf-8")
        self.assertIn("gamedeals.coordinator", content)
        self.assertIn("generation 7 dropped", content)


if __name__ == "__main__":
    unittest.main()
