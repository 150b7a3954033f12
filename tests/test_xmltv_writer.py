from datetime import datetime, timezone

from lxml import etree

from conftest import programme

from epg_aggregator.services.fetch_types import ChannelInfo, EnrichedProgramme, EnrichmentResult
from epg_aggregator.utils.xmltv_writer import (
    GeneratorInfo,
    escape_xml,
    listing_statistics,
    render_error_document,
    render_listings,
    render_unavailable_document,
)


GENERATOR = GeneratorInfo(name="Test EPG", url="http://example.test", source="EPG.PW")


def breaking_bad_pilot() -> EnrichedProgramme:
    return EnrichedProgramme.from_programme(
        programme("Breaking Bad", "Walter starts cooking", channel_id="AMC.us"),
        EnrichmentResult(
            show_name="Breaking Bad",
            season=1,
            episode=1,
            episode_title="Pilot",
            overview="Walter White is diagnosed with cancer.",
            poster_ref="https://image.tmdb.org/t/p/w500/poster.jpg",
            still_ref="https://image.tmdb.org/t/p/w300/still.jpg",
            show_id=1396,
        ),
    )


def test_plain_programme_timestamps_and_channel():
    document = render_listings([programme("News at Nine")], GENERATOR)

    assert '<programme start="20260129000000 +0000" stop="20260129010000 +0000" channel="ABC.us">' in document
    assert "<title>News at Nine</title>" in document
    assert document.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert 'generator-info-name="Test EPG"' in document
    assert 'source-info-name="EPG.PW"' in document


def test_all_reserved_characters_escaped():
    document = render_listings([programme("Tom & Jerry <\"Live\"> 'Special'")], GENERATOR)

    assert "<title>Tom &amp; Jerry &lt;&quot;Live&quot;&gt; &apos;Special&apos;</title>" in document
    etree.fromstring(document.encode("utf-8"))


def test_escape_xml_handles_none():
    assert escape_xml(None) == ""
    assert escape_xml("a&b") == "a&amp;b"


def test_rendering_is_deterministic():
    records = [programme("One"), breaking_bad_pilot(), programme("Two", channel_id="NBC.us")]

    assert render_listings(records, GENERATOR) == render_listings(records, GENERATOR)


def test_channels_emitted_once_in_first_seen_order():
    records = [
        programme("A", channel_id="NBC.us"),
        programme("B", channel_id="ABC.us"),
        programme("C", channel_id="NBC.us"),
    ]
    channels = {"ABC.us": ChannelInfo(channel_id="ABC.us", display_name="ABC", icon_url="http://i/abc.png")}

    root = etree.fromstring(render_listings(records, GENERATOR, channels).encode("utf-8"))

    assert [c.get("id") for c in root.findall("channel")] == ["NBC.us", "ABC.us"]
    assert root.find("channel[@id='ABC.us']/display-name").text == "ABC"
    assert root.find("channel[@id='ABC.us']/icon").get("src") == "http://i/abc.png"
    assert root.find("channel[@id='NBC.us']/display-name").text == "NBC.us"
    assert [p.findtext("title") for p in root.findall("programme")] == ["A", "B", "C"]


def test_enriched_programme_rendering():
    root = etree.fromstring(render_listings([breaking_bad_pilot()], GENERATOR).encode("utf-8"))
    element = root.find("programme")

    assert element.findtext("title") == "Breaking Bad - Pilot"
    assert element.findtext("sub-title") == "Pilot"
    assert element.findtext("desc") == "S1E1: Walter White is diagnosed with cancer."
    assert element.find("episode-num[@system='xmltv_ns']").text == "0.0."
    assert element.find("episode-num[@system='onscreen']").text == "S01E01"
    assert element.find("icon").get("src").endswith("still.jpg")
    assert element.find("image").get("src").endswith("poster.jpg")
    assert [c.text for c in element.findall("category")] == ["series", "tmdb:tv:1396"]


def test_enriched_without_catalog_keeps_original_description():
    record = EnrichedProgramme.from_programme(
        programme("The Office", "Office hijinks"),
        EnrichmentResult(show_name="The Office", season=3, episode=12),
    )

    root = etree.fromstring(render_listings([record], GENERATOR).encode("utf-8"))
    element = root.find("programme")

    assert element.findtext("title") == "The Office"
    assert element.find("sub-title") is None
    assert element.findtext("desc") == "Office hijinks"
    assert element.find("episode-num[@system='xmltv_ns']").text == "2.11."
    assert element.find("episode-num[@system='onscreen']").text == "S03E12"


def test_error_document_spans_the_utc_day():
    now = datetime(2026, 1, 29, 15, 42, tzinfo=timezone.utc)

    root = etree.fromstring(render_error_document("upstream down", "Test EPG", now).encode("utf-8"))

    element = root.find("programme")
    assert root.find("channel").get("id") == "error"
    assert element.get("start") == "20260129000000 +0000"
    assert element.get("stop") == "20260130000000 +0000"
    assert element.findtext("title") == "EPG Service Error"
    assert "upstream down" in element.findtext("desc")


def test_unavailable_document():
    root = etree.fromstring(render_unavailable_document("No EPG data available").encode("utf-8"))

    assert root.tag == "tv"
    assert root.findtext("error") == "No EPG data available"


def test_listing_statistics():
    records = [programme("A"), breaking_bad_pilot()]

    stats = listing_statistics(records)

    assert stats["total"] == 2
    assert stats["enriched"] == 1
    assert stats["channels"] == 2
    assert stats["date_range"] == {"start": "20260129", "end": "20260129"}
    assert stats["enrichment_rate"] == "50.0%"
