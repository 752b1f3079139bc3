import unittest
from pathlib import Path
from unittest.mock import patch

from momentum.logging_config import FileLogConsumer, module_filter, setup_logging


class SetupLoggingTests(unittest.TestCase):
    @patch("momentum.logging_config.logger")
    def test_registers_known_consumers(self, mock_logger) -> None:
        descriptions = setup_logging(
            level="DEBUG",
            consumers=[{"type": "console", "level": "WARNING"}],
        )

        mock_logger.remove.assert_called_once()
        mock_logger.add.assert_called_once()
        self.assertEqual("WARNING", mock_logger.add.call_args.kwargs["level"])
        self.assertEqual(["console (stderr, WARNING)"], descriptions)

    @patch("momentum.logging_config.logger")
    def test_unknown_consumer_is_skipped(self, mock_logger) -> None:
        descriptions = setup_logging(consumers=[{"type": "syslog"}])

        self.assertEqual([], descriptions)
        mock_logger.add.assert_not_called()
        mock_logger.warning.assert_called_once()

    @patch("momentum.logging_config.Path.mkdir")
    @patch("momentum.logging_config.logger")
    def test_default_consumers(self, mock_logger, _mkdir) -> None:
        descriptions = setup_logging()

        self.assertEqual(2, mock_logger.add.call_count)
        self.assertTrue(descriptions[1].startswith("file (momentum.log"))

    @patch("momentum.logging_config.Path.mkdir")
    @patch("momentum.logging_config.logger")
    def test_relative_file_path_lands_in_log_dir(self, mock_logger, _mkdir) -> None:
        data_dir = Path("/data/momentum")

        setup_logging(consumers=[{"type": "file", "path": "sync.log"}], log_dir=data_dir)

        self.assertEqual(str(data_dir / "sync.log"), mock_logger.add.call_args.args[0])

    @patch("momentum.logging_config.logger")
    def test_bad_consumer_options_are_skipped(self, mock_logger) -> None:
        descriptions = setup_logging(consumers=[{"type": "console", "colour": True}])

        self.assertEqual([], descriptions)
        mock_logger.add.assert_not_called()
        mock_logger.warning.assert_called_once()

    @patch("momentum.logging_config.logger")
    def test_modules_scope_a_sink(self, mock_logger) -> None:
        [description] = setup_logging(consumers=[{"type": "console", "modules": ["momentum.cloud"]}])

        self.assertIn("momentum.cloud only", description)
        sink_filter = mock_logger.add.call_args.kwargs["filter"]
        self.assertTrue(sink_filter({"name": "momentum.cloud.client"}))
        self.assertFalse(sink_filter({"name": "momentum.memory.store"}))


class FileLogConsumerTests(unittest.TestCase):
    def test_absolute_path_ignores_log_dir(self) -> None:
        consumer = FileLogConsumer(path="/var/log/momentum.log", log_dir=Path("/data"))
        self.assertEqual(Path("/var/log/momentum.log"), consumer.path)

    def test_no_modules_means_no_filter(self) -> None:
        self.assertIsNone(module_filter(None))
        self.assertIsNone(module_filter([]))
