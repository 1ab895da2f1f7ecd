"""Tests for final-video timing and listing snapshot helpers."""

import pytest

from src.workflows.property_data import compile_property_data, extract_photo_urls
from src.workflows.timing import calculate_timing, frames_per_lambda, playback_rate
from tests.fakes import LISTING_SNAPSHOT


def test_long_voice_over_targets_thirty_seconds():
    timing = calculate_timing(audio_duration=25.0, video_duration=40.0)

    assert timing.target_duration == 30
    assert timing.audio_padding == pytest.approx(2.5)
    assert timing.playback_rate == pytest.approx(40 / 30)
    assert timing.frames_per_lambda == 100


def test_short_voice_over_targets_twenty_seconds():
    timing = calculate_timing(audio_duration=14.0, video_duration=20.0)

    assert timing.target_duration == 20
    assert timing.audio_padding == pytest.approx(3.0)
    assert timing.playback_rate == pytest.approx(1.0)


def test_audio_longer_than_target_gets_no_padding():
    assert calculate_timing(audio_duration=34.0, video_duration=30.0).audio_padding == 0.0


@pytest.mark.parametrize("video, expected", [(5.0, 0.5), (100.0, 2.0), (30.0, 1.5)])
def test_playback_rate_is_clamped(video, expected):
    assert playback_rate(video, 20) == pytest.approx(expected)


def test_frames_per_lambda_has_a_floor():
    assert frames_per_lambda(20) == 100
    assert frames_per_lambda(60) == 167


def test_compile_property_data():
    location, stats = compile_property_data(LISTING_SNAPSHOT)

    assert location == "12 Oak St, Austin, TX, 78701"
    assert stats.price == 550000
    assert stats.square_feet == 1800
    assert stats.year_built == 1998
    assert stats.home_type == "SINGLE_FAMILY"
    assert stats.hoa_details is None


def test_compile_property_data_skips_missing_address_parts():
    location, _ = compile_property_data({"address": {"city": "Austin", "state": "TX"}})

    assert location == "Austin, TX"


def test_extract_photo_urls_takes_largest_jpeg_once():
    snapshot = dict(LISTING_SNAPSHOT)
    snapshot["photos"] = LISTING_SNAPSHOT["photos"] + [LISTING_SNAPSHOT["photos"][1], {"caption": "x"}]

    urls = extract_photo_urls(snapshot)

    assert urls == [
        "https://photos.example.com/front.jpg",
        "https://photos.example.com/kitchen-1.jpg",
        "https://photos.example.com/kitchen-2.jpg",
    ]
