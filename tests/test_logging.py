from __future__ import annotations

import logging

from taskcat.infra import logging as taskcat_logging


def test_console_handler_follows_requested_level(tmp_path, monkeypatch) -> None:
    captured: dict = {}
    monkeypatch.setattr(taskcat_logging, "PROJECT_ROOT", tmp_path)
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

    taskcat_logging.setup_logging("debug")

    file_handler, console_handler = captured["handlers"]
    try:
        assert captured["level"] == "DEBUG"
        assert console_handler.level == logging.NOTSET
        assert (tmp_path / "logs").is_dir()
    finally:
        file_handler.close()
