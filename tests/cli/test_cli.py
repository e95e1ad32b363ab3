# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for the page-stream CLI."""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pagestream.cli.main import config_from_args, create_parser, main, run, split_extra_args
from pagestream.core.config import DEMO_PAGE

SRT_INGEST = "srt://127.0.0.1:9000?streamid=test"


class TestParser:
    """Tests for create_parser()."""

    def test_defaults(self):
        args = create_parser().parse_args(["--ingest", SRT_INGEST])

        assert args.ingest == SRT_INGEST
        assert args.url is None
        assert args.video_file is None
        assert args.width == 1280
        assert args.height == 720
        assert args.fps == 30
        assert args.headless is False
        assert args.fullscreen is True
        assert args.app_mode is True
        assert args.suppress_automation_banner is True
        assert args.auto_dismiss_infobar is False
        assert args.extra_ffmpeg == []
        assert args.ffmpeg_path == "ffmpeg"
        assert args.log_level == "info"

    def test_ingest_required(self):
        with pytest.raises(SystemExit) as exc_info:
            create_parser().parse_args(["--url", "demo/index.html"])
        assert exc_info.value.code == 2

    def test_url_and_video_file_exclusive(self):
        with pytest.raises(SystemExit) as exc_info:
            create_parser().parse_args(
                ["--ingest", SRT_INGEST, "--url", "a.html", "--video-file", "b.mp4"]
            )
        assert exc_info.value.code == 2

    def test_negated_toggles(self):
        args = create_parser().parse_args([
            "--ingest", SRT_INGEST,
            "--no-fullscreen",
            "--no-app-mode",
            "--no-suppress-automation-banner",
            "--headless",
        ])

        assert args.fullscreen is False
        assert args.app_mode is False
        assert args.suppress_automation_banner is False
        assert args.headless is True

    def test_env_defaults(self, monkeypatch):
        monkeypatch.setenv("PAGE_STREAM_LOG_LEVEL", "debug")
        monkeypatch.setenv("FFMPEG_PATH", "/usr/local/bin/ffmpeg")

        args = create_parser().parse_args(["--ingest", SRT_INGEST])

        assert args.log_level == "debug"
        assert args.ffmpeg_path == "/usr/local/bin/ffmpeg"

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            create_parser().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "page-stream" in capsys.readouterr().out


class TestConfigFromArgs:
    """Tests for config_from_args()."""

    def parse(self, *argv):
        return config_from_args(create_parser().parse_args(["--ingest", SRT_INGEST, *argv]))

    def test_defaults_to_demo_page(self):
        assert self.parse().url == DEMO_PAGE

    def test_extra_ffmpeg_split(self):
        config = self.parse("--extra-ffmpeg=-loglevel verbose", "--extra-ffmpeg=-max_muxing_queue_size 1024")
        assert config.extra_ffmpeg == ("-loglevel", "verbose", "-max_muxing_queue_size", "1024")

    def test_split_extra_args_quoting(self):
        assert split_extra_args(['-metadata title="My Stream"']) == ["-metadata", "title=My Stream"]

    def test_empty_audio_bitrate_disables_audio(self):
        assert self.parse("--audio-bitrate", "").has_audio is False

    def test_video_loop_needs_video_file(self):
        assert self.parse("--video-loop").video_loop is False
        config = self.parse("--video-file", "clip.mp4", "--video-loop")
        assert config.video_loop is True
        assert config.video_file == "clip.mp4"

    def test_signal_names_normalized(self):
        config = self.parse("--refresh-signal", "sigusr1")
        assert config.refresh_signal == "SIGUSR1"

    def test_reconnect_options(self):
        config = self.parse(
            "--reconnect-attempts", "5",
            "--reconnect-initial-delay-ms", "500",
            "--reconnect-max-delay-ms", "8000",
        )
        assert config.reconnect_attempts == 5
        assert config.reconnect_initial_delay_ms == 500
        assert config.reconnect_max_delay_ms == 8000


class TestRun:
    """Tests for run() and main()."""

    def test_invalid_configuration_exits_before_spawn(self):
        with patch("asyncio.create_subprocess_exec") as spawn:
            code = run(["--ingest", SRT_INGEST, "--width", "0"])

        assert code == 1
        spawn.assert_not_called()

    def test_test_mode(self, monkeypatch, caplog):
        monkeypatch.setenv("PAGE_STREAM_TEST_MODE", "1")

        with patch("asyncio.create_subprocess_exec") as spawn, \
                caplog.at_level(logging.INFO, logger="pagestream"):
            code = run(["--ingest", SRT_INGEST, "--url", "demo/index.html"])

        assert code == 0
        spawn.assert_not_called()
        assert "Streaming page 'demo/index.html'" in caplog.text
        assert "PAGE_STREAM_TEST_MODE enabled" in caplog.text

    def test_streamer_exit_code_returned(self):
        streamer = MagicMock()
        streamer.run = AsyncMock(return_value=10)

        with patch("pagestream.cli.main.PageStreamer", return_value=streamer) as streamer_cls:
            code = run(["--ingest", SRT_INGEST, "--ffmpeg-path", "/opt/ffmpeg"])

        assert code == 10
        _, kwargs = streamer_cls.call_args
        assert kwargs["ffmpeg_path"] == "/opt/ffmpeg"

    def test_main_exits_with_code(self):
        with patch("pagestream.cli.main.run", return_value=11):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 11

    def test_main_requires_ingest(self):
        with patch("sys.argv", ["page-stream", "--url", "demo/index.html"]):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code != 0
