# Media statistics aggregation for the active call.

# rest/conferences/{id}/mediastats returns a flat list of leaf records, each
# tagged with mediaDirection (RX/TX) and mediaType (AUDIO/VIDEO). They are
# routed into one ChannelStats per media kind; call-level totals are derived
# from audio + video.
#
# The device never reports totals itself, and "not reported" is not "zero":
# null_sum keeps that distinction (None + None stays None).

import logging
from typing import Any, Iterable, Mapping, TypeVar

from videoos_monitor.models import CallStats, ChannelStats

log = logging.getLogger(__name__)

N = TypeVar("N", int, float)


def null_sum(a: N | None, b: N | None) -> N | None:
    """Both absent → None; one present → that value; both → their sum."""
    if a is None:
        return b
    if b is None:
        return a
    return a + b


def _int(record: Mapping[str, Any], key: str) -> int | None:
    value = record.get(key)
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _float(record: Mapping[str, Any], key: str) -> float | None:
    value = record.get(key)
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _str(record: Mapping[str, Any], key: str) -> str | None:
    value = record.get(key)
    return str(value) if value is not None else None


def _apply(stats: ChannelStats, record: Mapping[str, Any], direction: str, video: bool) -> None:
    suffix = direction.lower()
    setattr(stats, f"bit_rate_{suffix}", _int(record, "actualBitRate"))
    setattr(stats, f"jitter_{suffix}", _float(record, "jitter"))
    setattr(stats, f"packet_loss_{suffix}", _int(record, "packetLoss"))
    setattr(stats, f"percent_packet_loss_{suffix}", _float(record, "percentPacketLoss"))
    stats.codec = _str(record, "mediaAlgorithm")
    if video:
        setattr(stats, f"frame_rate_{suffix}", _float(record, "actualFrameRate"))
        setattr(stats, f"frame_size_{suffix}", _str(record, "mediaFormat"))


def aggregate_channels(records: Iterable[Mapping[str, Any]]) -> tuple[ChannelStats, ChannelStats]:
    """Route leaf records into (audio, video). Unknown tags are skipped."""
    audio = ChannelStats()
    video = ChannelStats()

    for record in records:
        if not isinstance(record, Mapping):
            continue
        direction = str(record.get("mediaDirection") or "").upper()
        media_type = str(record.get("mediaType") or "").upper()

        if direction not in ("RX", "TX"):
            log.debug("Skipping media stats record with direction %r", record.get("mediaDirection"))
            continue
        if media_type == "AUDIO":
            _apply(audio, record, direction, video=False)
        elif media_type == "VIDEO":
            _apply(video, record, direction, video=True)
        else:
            log.debug("Skipping media stats record with media type %r", record.get("mediaType"))

    return audio, video


def apply_call_totals(call_stats: CallStats, audio: ChannelStats, video: ChannelStats) -> CallStats:
    call_stats.total_packet_loss_rx = null_sum(audio.packet_loss_rx, video.packet_loss_rx)
    call_stats.total_packet_loss_tx = null_sum(audio.packet_loss_tx, video.packet_loss_tx)
    call_stats.percent_packet_loss_rx = null_sum(audio.percent_packet_loss_rx, video.percent_packet_loss_rx)
    call_stats.percent_packet_loss_tx = null_sum(audio.percent_packet_loss_tx, video.percent_packet_loss_tx)
    call_stats.call_rate_rx = null_sum(video.bit_rate_rx, audio.bit_rate_rx)
    call_stats.call_rate_tx = null_sum(video.bit_rate_tx, audio.bit_rate_tx)
    return call_stats


def content_channel(shared: Any) -> ChannelStats:
    """
    Shared content stats from /rest/mediastats.

    One content source is shared at a time, so only vars[0] matters.
    """
    content = ChannelStats()
    if not isinstance(shared, Mapping):
        return content
    entries = shared.get("vars") or []
    if entries and isinstance(entries[0], Mapping):
        first = entries[0]
        content.frame_width_tx = _int(first, "width")
        content.frame_height_tx = _int(first, "height")
        content.frame_rate_tx = _float(first, "framerate")
        content.bit_rate_tx = _int(first, "bitrate")
    return content
