# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for ingest classification and troubleshooting guidance."""

import pytest

from pagestream.core.ingest import (
    ExitCode,
    IngestProtocol,
    classify_ingest,
    troubleshooting_guidance,
)


class TestExitCode:
    """Tests for reserved exit codes."""

    def test_values(self):
        assert ExitCode.OK == 0
        assert ExitCode.FAILURE == 1
        assert ExitCode.RECONNECT_EXHAUSTED == 10
        assert ExitCode.NON_RETRYABLE == 11


class TestClassifyIngest:
    """Tests for classify_ingest()."""

    @pytest.mark.parametrize("ingest,expected", [
        ("srt://127.0.0.1:9000?streamid=test", IngestProtocol.SRT),
        ("SRT://HOST:9000", IngestProtocol.SRT),
        ("rtmp://live.example.com/app/key", IngestProtocol.RTMP),
        ("rtmps://live.example.com/app/key", IngestProtocol.RTMP),
        ("udp://239.0.0.1:1234", IngestProtocol.OTHER),
        ("/tmp/out.ts", IngestProtocol.OTHER),
        ("mysrt://host", IngestProtocol.OTHER),
    ])
    def test_classification(self, ingest, expected):
        assert classify_ingest(ingest) == expected

    def test_retry_eligibility(self):
        assert IngestProtocol.SRT.retry_eligible is True
        assert IngestProtocol.RTMP.retry_eligible is True
        assert IngestProtocol.OTHER.retry_eligible is False

    def test_display_names(self):
        assert IngestProtocol.SRT.display_name == "SRT"
        assert IngestProtocol.RTMP.display_name == "RTMP"
        assert IngestProtocol.OTHER.display_name == "INGEST"


class TestTroubleshootingGuidance:
    """Tests for troubleshooting_guidance()."""

    def test_srt_mentions_listener_address(self):
        lines = troubleshooting_guidance(IngestProtocol.SRT, "srt://10.0.0.5:7001?streamid=x")

        assert lines[0].startswith("SRT connection failed permanently")
        assert any("srt://10.0.0.5:7001" in line for line in lines)
        assert any("UDP" in line for line in lines)
        assert any("--reconnect-attempts 0" in line for line in lines)

    def test_srt_without_port(self):
        lines = troubleshooting_guidance(IngestProtocol.SRT, "srt://ingest.example.com")
        assert any("srt://ingest.example.com:PORT" in line for line in lines)

    def test_rtmp_suggests_flv(self):
        lines = troubleshooting_guidance(IngestProtocol.RTMP, "rtmp://live/app/key")

        assert lines[0].startswith("RTMP connection failed permanently")
        assert any("--format flv" in line for line in lines)
        assert any("rtmp://live/app/key" in line for line in lines)

    def test_other_has_no_guidance(self):
        assert troubleshooting_guidance(IngestProtocol.OTHER, "out.ts") == []
