# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for StreamConfig and display-size reconciliation."""

import dataclasses
import logging

import pytest

from pagestream.core.config import (
    DEMO_PAGE,
    CaptureMode,
    StreamConfig,
    env_flag,
    reconcile_display_size,
)
from pagestream.core.ingest import IngestProtocol
from pagestream.exceptions import ConfigurationError

SRT_INGEST = "srt://127.0.0.1:9000?streamid=test"


class TestStreamConfigDefaults:
    """Tests for default values."""

    def test_default_values(self):
        """Test default configuration values."""
        config = StreamConfig(ingest=SRT_INGEST)

        assert config.url == DEMO_PAGE
        assert config.width == 1280
        assert config.height == 720
        assert config.fps == 30
        assert config.preset == "veryfast"
        assert config.video_bitrate == "2500k"
        assert config.audio_bitrate == "128k"
        assert config.format == "mpegts"
        assert config.extra_ffmpeg == ()
        assert config.headless is False
        assert config.fullscreen is True
        assert config.app_mode is True
        assert config.reconnect_attempts == 0
        assert config.reconnect_initial_delay_ms == 1000
        assert config.reconnect_max_delay_ms == 15000
        assert config.health_interval_seconds == 30
        assert config.auto_refresh_seconds == 0
        assert config.crop_infobar == 0
        assert config.refresh_signal == "SIGHUP"
        assert config.graceful_stop_signal == "SIGTERM"

    def test_demo_page_is_bundled(self):
        """The fallback page ships with the package."""
        assert DEMO_PAGE.endswith("index.html")
        with open(DEMO_PAGE, encoding="utf-8") as f:
            assert "<html" in f.read()

    def test_empty_url_falls_back_to_demo(self):
        config = StreamConfig(ingest=SRT_INGEST, url="")
        assert config.url == DEMO_PAGE

    def test_extra_ffmpeg_normalized_to_tuple(self):
        config = StreamConfig(ingest=SRT_INGEST, extra_ffmpeg=["-loglevel", "verbose"])
        assert config.extra_ffmpeg == ("-loglevel", "verbose")

    def test_config_is_frozen(self):
        config = StreamConfig(ingest=SRT_INGEST)
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.width = 640


class TestStreamConfigEnvironment:
    """Tests for environment-sourced fields."""

    def test_display_from_env(self, monkeypatch):
        monkeypatch.setenv("DISPLAY", ":42")
        assert StreamConfig(ingest=SRT_INGEST).display == ":42"

    def test_display_default(self, monkeypatch):
        monkeypatch.delenv("DISPLAY", raising=False)
        assert StreamConfig(ingest=SRT_INGEST).display == ":99"

    def test_input_flags_from_env(self, monkeypatch):
        monkeypatch.setenv("INPUT_FFMPEG_FLAGS", "-thread_queue_size 512")
        assert StreamConfig(ingest=SRT_INGEST).input_flags == "-thread_queue_size 512"

    def test_input_flags_unset(self):
        assert StreamConfig(ingest=SRT_INGEST).input_flags is None

    @pytest.mark.parametrize("value,expected", [
        ("1", True),
        ("true", True),
        ("yes", True),
        ("0", False),
        ("false", False),
        ("", False),
    ])
    def test_test_mode_from_env(self, monkeypatch, value, expected):
        monkeypatch.setenv("PAGE_STREAM_TEST_MODE", value)
        assert StreamConfig(ingest=SRT_INGEST).test_mode is expected

    def test_env_flag_with_mapping(self):
        assert env_flag("X", {"X": "On"}) is True
        assert env_flag("X", {"X": "off"}) is False
        assert env_flag("X", {}) is False


class TestStreamConfigValidation:
    """Tests for configuration validation."""

    def test_empty_ingest_rejected(self):
        with pytest.raises(ConfigurationError, match="ingest"):
            StreamConfig(ingest="  ")

    @pytest.mark.parametrize("field", ["width", "height", "fps"])
    def test_non_positive_geometry_rejected(self, field):
        with pytest.raises(ConfigurationError, match=field):
            StreamConfig(ingest=SRT_INGEST, **{field: 0})

    def test_bool_geometry_rejected(self):
        with pytest.raises(ConfigurationError):
            StreamConfig(ingest=SRT_INGEST, width=True)

    def test_negative_reconnect_attempts_rejected(self):
        with pytest.raises(ConfigurationError, match="reconnect_attempts"):
            StreamConfig(ingest=SRT_INGEST, reconnect_attempts=-1)

    def test_initial_delay_above_max_rejected(self):
        with pytest.raises(ConfigurationError, match="must not exceed"):
            StreamConfig(
                ingest=SRT_INGEST,
                reconnect_initial_delay_ms=5000,
                reconnect_max_delay_ms=1000,
            )

    def test_zero_delay_rejected(self):
        with pytest.raises(ConfigurationError):
            StreamConfig(ingest=SRT_INGEST, reconnect_initial_delay_ms=0)

    def test_negative_crop_rejected(self):
        with pytest.raises(ConfigurationError, match="crop_infobar"):
            StreamConfig(ingest=SRT_INGEST, crop_infobar=-5)

    def test_negative_interval_rejected(self):
        with pytest.raises(ConfigurationError):
            StreamConfig(ingest=SRT_INGEST, auto_refresh_seconds=-1)

    def test_unknown_signal_rejected(self):
        with pytest.raises(ConfigurationError, match="refresh_signal"):
            StreamConfig(ingest=SRT_INGEST, refresh_signal="SIGNOPE")

    def test_custom_signals_accepted(self):
        config = StreamConfig(
            ingest=SRT_INGEST,
            refresh_signal="SIGUSR1",
            graceful_stop_signal="SIGINT",
        )
        assert config.refresh_signal == "SIGUSR1"


class TestStreamConfigDerived:
    """Tests for derived properties."""

    @pytest.mark.parametrize("ingest,protocol", [
        ("srt://host:9000", IngestProtocol.SRT),
        ("rtmp://live/app/key", IngestProtocol.RTMP),
        ("rtmps://live/app/key", IngestProtocol.RTMP),
        ("out.ts", IngestProtocol.OTHER),
    ])
    def test_protocol_classified_once(self, ingest, protocol):
        assert StreamConfig(ingest=ingest).protocol == protocol

    def test_capture_mode(self):
        assert StreamConfig(ingest=SRT_INGEST).capture_mode == CaptureMode.PAGE
        assert StreamConfig(ingest=SRT_INGEST, video_file="a.mp4").capture_mode == CaptureMode.FILE

    def test_has_audio(self):
        assert StreamConfig(ingest=SRT_INGEST).has_audio is True
        assert StreamConfig(ingest=SRT_INGEST, audio_bitrate="").has_audio is False
        assert StreamConfig(ingest=SRT_INGEST, audio_bitrate=None).has_audio is False

    def test_startup_message_page(self):
        config = StreamConfig(ingest=SRT_INGEST, url="https://example.com")
        assert config.startup_message() == (
            f"Streaming page 'https://example.com' to ingest '{SRT_INGEST}' (1280x720@30fps)"
        )

    def test_startup_message_video_loop(self):
        config = StreamConfig(ingest=SRT_INGEST, video_file="clip.mp4", video_loop=True)
        message = config.startup_message()
        assert message.startswith("Streaming video file 'clip.mp4'")
        assert message.endswith("(1280x720@30fps, loop)")


class TestReconcileDisplaySize:
    """Tests for reconcile_display_size()."""

    def test_no_env_keeps_config(self):
        config = StreamConfig(ingest=SRT_INGEST)
        assert reconcile_display_size(config, {}) is config

    def test_only_one_dimension_keeps_config(self):
        config = StreamConfig(ingest=SRT_INGEST)
        assert reconcile_display_size(config, {"WIDTH": "1920"}) is config

    def test_matching_env_keeps_config(self, caplog):
        config = StreamConfig(ingest=SRT_INGEST)
        with caplog.at_level(logging.WARNING, logger="pagestream"):
            result = reconcile_display_size(config, {"WIDTH": "1280", "HEIGHT": "720"})
        assert result is config
        assert "[DISPLAY]" not in caplog.text

    def test_env_overrides_with_warning(self, caplog):
        config = StreamConfig(ingest=SRT_INGEST, fps=25)
        with caplog.at_level(logging.WARNING, logger="pagestream"):
            result = reconcile_display_size(config, {"WIDTH": "1920", "HEIGHT": "1080"})

        assert (result.width, result.height) == (1920, 1080)
        assert result.fps == 25
        assert result.protocol == IngestProtocol.SRT
        assert "overridden to match Xvfb env 1920x1080" in caplog.text

    def test_invalid_env_ignored(self):
        config = StreamConfig(ingest=SRT_INGEST)
        assert reconcile_display_size(config, {"WIDTH": "wide", "HEIGHT": "720"}) is config

    def test_reads_os_environ_by_default(self, monkeypatch):
        monkeypatch.setenv("WIDTH", "640")
        monkeypatch.setenv("HEIGHT", "480")
        result = reconcile_display_size(StreamConfig(ingest=SRT_INGEST))
        assert (result.width, result.height) == (640, 480)
