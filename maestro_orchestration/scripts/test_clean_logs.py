import tempfile
import unittest
from pathlib import Path

from maestro_orchestration.scripts import clean_logs


class CleanLogsTests(unittest.TestCase):
    def test_removes_directory_tree(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            logs = Path(tmp) / "tests"
            (logs / "2024-01-01_101010").mkdir(parents=True)
            (logs / "2024-01-01_101010" / "maestro.log").write_text("log", encoding="utf-8")

            self.assertTrue(clean_logs.clean_logs(logs))
            self.assertFalse(logs.exists())

    def test_missing_directory_is_not_an_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertFalse(clean_logs.clean_logs(Path(tmp) / "absent"))

    def test_main_accepts_custom_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            logs = Path(tmp) / "custom"
            logs.mkdir()
            self.assertEqual(clean_logs.main(["--logs-dir", str(logs)]), 0)
            self.assertFalse(logs.exists())


if __name__ == "__main__":
    unittest.main()
