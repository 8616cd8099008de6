import pytest

from geo.location_extract import (
    LOCATION_RULES,
    RULES_BY_NAME,
    clean_dispatch_message,
    extract_location,
    match_location,
    strip_grid_tail,
)


def test_rule_order() -> None:
    assert [r.name for r in LOCATION_RULES] == [
        "assemble_point",
        "street_address",
        "corner",
        "road_name",
        "at_address",
        "before_region",
        "before_slash",
    ]


def test_street_address() -> None:
    message = "@@ALERT GRASS FIRE 230 CHURCHILL RD YARRAWONGA / F123456789"
    assert match_location(message) == ("street_address", "230 CHURCHILL RD, YARRAWONGA")


def test_assemble_point() -> None:
    message = (
        "@@ALERT STRIKE TEAM 1234 ASSEMBLE AT KYNETON SHOWGROUNDS "
        "10 MOLLISON ST KYNETON / F240100003"
    )
    assert match_location(message) == ("assemble_point", "KYNETON")


def test_assemble_point_drops_saint_prefix() -> None:
    message = "ASSEMBLE AT ARARAT FIRE STATION 1 HIGH ST ST ARNAUD / F240100009"
    assert RULES_BY_NAME["assemble_point"].apply(message) == "ARNAUD"


def test_corner() -> None:
    message = (
        "@@ALERT STRUC1 HOUSE FIRE CNR MAROONDAH HWY/HEALESVILLE RD "
        "YARRA GLEN SVNE 8123 F240100002"
    )
    assert match_location(message) == ("corner", "YARRA GLEN")


def test_road_name() -> None:
    message = "@@ALERT MOUNTAIN VIEW RD KINGLAKE / F240100004"
    assert match_location(message) == ("road_name", "MOUNTAIN VIEW Rd, KINGLAKE")


def test_road_name_rejects_incident_words_in_road() -> None:
    rule = RULES_BY_NAME["road_name"]
    assert rule.apply("GRASS FIRE CHURCHILL RD YARRAWONGA /") is None


def test_at_address() -> None:
    rule = RULES_BY_NAME["at_address"]
    assert rule.apply("AT COUNTRY CLUB 15 GOLF LINKS WODONGA /") == "15 GOLF, LINKS WODONGA"


def test_before_region_prefers_longest_trailing_words() -> None:
    message = "@@ALERT G&SC1 GRASS FIRE KANGAROO GROUND SVNE 1234 F240100006"
    assert match_location(message) == ("before_region", "KANGAROO GROUND")


def test_before_slash_fallback() -> None:
    message = "@@ALERT GRASS FIRE CHURCHILL RD YARRAWONGA / F240100007"
    assert match_location(message) == ("before_slash", "CHURCHILL RD YARRAWONGA")


def test_earlier_rule_wins_over_later_rule() -> None:
    message = (
        "@@ALERT STRUC1 HOUSE FIRE 12 SMITH ST KANGAROO GROUND / "
        "MAIN RD SVNE 1234 F240100001"
    )
    cleaned = clean_dispatch_message(message)
    assert RULES_BY_NAME["street_address"].apply(cleaned) == "12 SMITH ST, KANGAROO GROUND"
    assert RULES_BY_NAME["before_region"].apply(cleaned) == "MAIN RD"
    assert extract_location(message) == "12 SMITH ST, KANGAROO GROUND"


def test_keywords_trimmed_from_region_candidate() -> None:
    message = "@@ALERT STRIKE TEAM FIRE TRUCK REQUIRED ASSEMBLE SVNE 1234 F240100008"
    location = extract_location(message)
    assert location == "TRUCK REQUIRED ASSEMBLE"


def test_no_location() -> None:
    assert extract_location("@@ALERT TEST") is None
    assert extract_location("") is None


@pytest.mark.parametrize(
    "message",
    [
        "@@ALERT GRASS FIRE 230 CHURCHILL RD YARRAWONGA / F123456789",
        "@@ALERT STRUC1 HOUSE FIRE CNR MAROONDAH HWY/HEALESVILLE RD YARRA GLEN SVNE 8123",
        "@@ALERT G&SC1 GRASS FIRE KANGAROO GROUND SVNE 1234 F240100006",
        "@@ALERT ALARC1 ALARM OPERATING M 23 A4",
    ],
)
def test_extraction_is_deterministic(message: str) -> None:
    first = extract_location(message)
    assert extract_location(message) == first
    if first is not None:
        assert len(first) >= 3


def test_strip_grid_tail() -> None:
    assert strip_grid_tail("YARRA GLEN M3") == "YARRA GLEN"
    assert strip_grid_tail("YARRA GLEN") == "YARRA GLEN"
