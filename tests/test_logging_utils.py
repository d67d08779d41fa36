from __future__ import annotations

import logging
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from console_core import logging_utils


def _settings(log_file: str | None, level: str = "INFO") -> SimpleNamespace:
    return SimpleNamespace(logging=SimpleNamespace(level=level, file=log_file))


@patch("console_core.logging_utils.load_settings")
@patch("console_core.logging_utils.logging.basicConfig")
def test_configure_logging_stream_only(
    mock_basic_config: MagicMock,
    mock_load_settings: MagicMock,
) -> None:
    mock_load_settings.return_value = _settings(None, level="debug")

    logging_utils.configure_logging()

    kwargs = mock_basic_config.call_args.kwargs
    assert kwargs["force"] is True
    assert kwargs["level"] == logging.DEBUG
    assert len(kwargs["handlers"]) == 1


@patch("console_core.logging_utils.load_settings")
@patch("console_core.logging_utils.logging.basicConfig")
def test_configure_logging_with_file(
    mock_basic_config: MagicMock,
    mock_load_settings: MagicMock,
    tmp_path,
) -> None:
    mock_load_settings.return_value = _settings(str(tmp_path / "logs" / "console.log"))

    logging_utils.configure_logging()

    handlers = mock_basic_config.call_args.kwargs["handlers"]
    assert len(handlers) == 2
    assert isinstance(handlers[1], logging.FileHandler)
    handlers[1].close()


@patch("console_core.logging_utils.load_settings")
@patch("console_core.logging_utils.logging.FileHandler", side_effect=OSError("permission denied"))
@patch("console_core.logging_utils._logger")
def test_configure_logging_file_handler_error(
    mock_logger: MagicMock,
    _mock_file_handler: MagicMock,
    mock_load_settings: MagicMock,
) -> None:
    mock_load_settings.return_value = _settings("./logs/app.log")

    logging_utils.configure_logging()

    mock_logger.warning.assert_called_once()
