"""Tests for filename normalisation helpers."""

from __future__ import annotations

import pytest

from app.naming import (
    de_leet,
    detect_type,
    display_title,
    is_video_path,
    normalize_key,
    search_query,
)


def test_movie_release_reduces_to_title() -> None:
    filename = "Inception.2010.1080p.BluRay.mkv"

    assert normalize_key(filename) == "inception"
    assert display_title(filename) == "Inception"


def test_leetspeak_releases_share_a_key() -> None:
    assert normalize_key("Br34k1ng.B4d.S01E01.mkv") == normalize_key(
        "Breaking.Bad.S02E03.720p.mkv"
    )
    assert normalize_key("Breaking.Bad.S02E03.720p.mkv") == "breakingbad"


@pytest.mark.parametrize(
    "filename",
    [
        "Show.Name.S01E01.1080p.WEB.mkv",
        "Show.Name.S01E02.720p.HDTV.x264.mkv",
        "Show_Name_S02E10_2160p.mkv",
        "[Group] Show.Name.S03E01.mkv",
    ],
)
def test_key_is_stable_across_release_suffixes(filename: str) -> None:
    assert normalize_key(filename) == "showname"


def test_year_before_season_marker() -> None:
    filename = "Dark.2017.S01E01.1080p.mkv"

    assert normalize_key(filename) == "dark"
    assert display_title(filename) == "Dark 2017"


def test_empty_input_is_tolerated() -> None:
    assert normalize_key("") == ""
    assert normalize_key(None) == ""
    assert display_title(None) == ""
    assert detect_type(None) == "movie"


def test_name_without_markers_uses_whole_name() -> None:
    assert normalize_key("Home Movies") == "homemovies"
    assert display_title("Home_Movies") == "Home Movies"


def test_de_leet_maps_digits_to_letters() -> None:
    assert de_leet("H3ll0 W0rld") == "Hello World"
    assert de_leet(None) == ""


def test_search_query_strips_tags_and_year() -> None:
    assert search_query("[RARBG] The.Matrix.1999.1080p.mkv") == "The Matrix"
    assert search_query("Severance.S02E01.1080p.mkv") == "Severance"
    assert search_query("Alien.Romulus.1080p.WEB.mkv") == "Alien Romulus"


def test_detect_type_uses_season_marker() -> None:
    assert detect_type("Show.s01e01.mkv") == "series"
    assert detect_type("Inception.2010.mkv") == "movie"


def test_is_video_path() -> None:
    assert is_video_path("/Season 1/Show.S01E01.MKV")
    assert is_video_path("movie.mp4")
    assert not is_video_path("Show.S01E01.nfo")
