import pytest

from videoos_monitor.mediastats import aggregate_channels, apply_call_totals, content_channel, null_sum
from videoos_monitor.models import CallStats


@pytest.mark.parametrize("a, b, expected", [
    (None, None, None),
    (5, None, 5),
    (None, 7, 7),
    (3, 4, 7),
    (0, None, 0),
    (None, 0.0, 0.0),
])
def test_null_sum(a, b, expected):
    assert null_sum(a, b) == expected
    if expected is None:
        assert null_sum(a, b) is None


def test_null_sum_floats():
    assert null_sum(0.25, 1.5) == pytest.approx(1.75)
    assert null_sum(2.5, None) == pytest.approx(2.5)


def test_records_are_routed_by_direction_and_media_type():
    audio, video = aggregate_channels([
        {"mediaDirection": "RX", "mediaType": "AUDIO", "actualBitRate": 64, "jitter": 1.5,
         "packetLoss": 2, "percentPacketLoss": 0.5, "mediaAlgorithm": "G.722"},
        {"mediaDirection": "TX", "mediaType": "VIDEO", "actualBitRate": 1800, "actualFrameRate": 29.97,
         "mediaAlgorithm": "H.264", "mediaFormat": "720p"},
    ])

    assert audio.bit_rate_rx == 64
    assert audio.jitter_rx == pytest.approx(1.5)
    assert audio.packet_loss_rx == 2
    assert audio.codec == "G.722"
    assert audio.bit_rate_tx is None
    assert audio.frame_rate_rx is None

    assert video.bit_rate_tx == 1800
    assert video.frame_rate_tx == pytest.approx(29.97)
    assert video.frame_size_tx == "720p"
    assert video.bit_rate_rx is None


def test_unknown_tags_are_skipped():
    audio, video = aggregate_channels([
        {"mediaDirection": "RX", "mediaType": "FECC", "actualBitRate": 1},
        {"mediaDirection": "SIDEWAYS", "mediaType": "AUDIO", "actualBitRate": 5},
        {"mediaType": "VIDEO"},
        "garbage",
    ])
    assert audio.bit_rate_rx is None and audio.bit_rate_tx is None
    assert video.bit_rate_rx is None and video.bit_rate_tx is None


def test_totals_keep_absent_distinct_from_zero():
    audio, video = aggregate_channels([
        {"mediaDirection": "RX", "mediaType": "AUDIO", "actualBitRate": 64, "packetLoss": 0},
        {"mediaDirection": "RX", "mediaType": "VIDEO", "actualBitRate": 1856,
         "packetLoss": 5, "percentPacketLoss": 1.25},
        {"mediaDirection": "TX", "mediaType": "VIDEO", "actualBitRate": 1800},
    ])
    stats = apply_call_totals(CallStats(call_id="12:3:0:"), audio, video)

    assert stats.total_packet_loss_rx == 5
    assert stats.percent_packet_loss_rx == pytest.approx(1.25)
    assert stats.call_rate_rx == 1920
    assert stats.call_rate_tx == 1800
    assert stats.total_packet_loss_tx is None
    assert stats.percent_packet_loss_tx is None


def test_content_channel_uses_first_shared_source():
    content = content_channel({"vars": [
        {"width": 1920, "height": 1080, "framerate": 15.0, "bitrate": 512},
        {"width": 640, "height": 480},
    ]})
    assert (content.frame_width_tx, content.frame_height_tx) == (1920, 1080)
    assert content.frame_rate_tx == pytest.approx(15.0)
    assert content.bit_rate_tx == 512

    empty = content_channel(None)
    assert empty.bit_rate_tx is None
