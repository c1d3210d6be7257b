from app.utils import coerce_bool, coerce_int, describe_stream, format_bytes, parse_extra


def test_format_bytes_picks_unit():
    assert format_bytes(0) == "0 B"
    assert format_bytes(None) == "0 B"
    assert format_bytes(512) == "512 B"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(3 * 1024**3) == "3 GB"


def test_describe_stream_tags_quality():
    assert describe_stream("Movie.2160p.HDR.DV.mkv", 2 * 1024**3) == "2 GB | 4K | HDR | DV"
    assert describe_stream("Show.S01E01.1080p.mkv") == "1080p"
    assert describe_stream("Show.S01E01.720p.mkv") == ""


def test_parse_extra_decodes_stremio_segment():
    assert parse_extra("skip=20") == {"skip": "20"}
    assert parse_extra("showHidden%3Dtrue.json") == {"showHidden": "true"}
    assert parse_extra(None) == {}


def test_coercions():
    assert coerce_bool("true") is True
    assert coerce_bool("0") is False
    assert coerce_bool(None) is False
    assert coerce_int("40") == 40
    assert coerce_int("abc", default=3) == 3
