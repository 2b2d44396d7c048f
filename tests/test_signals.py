"""Tests for keyword signal extraction."""

import pytest

from lead_scoring import signals


class TestMatching:
    def test_case_insensitive(self):
        assert signals.matched_keywords("DRINGEND!", signals.URGENCY_KEYWORDS) == ["dringend"]

    def test_distinct_keywords_in_table_order(self):
        found = signals.matched_keywords("kaputt, sofort, kaputt", signals.URGENCY_KEYWORDS)
        assert found == ["sofort", "kaputt"]

    def test_substring_matches_are_kept(self):
        assert signals.contains_any("Motorrad", signals.HIGH_VALUE_SERVICE_KEYWORDS)
        # "fast" inside "Fastnacht"
        assert signals.contains_any("Fastnacht", signals.TIME_PRESSURE_KEYWORDS)

    @pytest.mark.parametrize("text", [None, "", 42])
    def test_missing_text_matches_nothing(self, text):
        assert signals.matched_keywords(text, signals.URGENCY_KEYWORDS) == []
        assert not signals.contains_any(text, signals.URGENCY_KEYWORDS)

    def test_multilingual_tables(self):
        assert signals.contains_any("Acil yardım lazım", signals.URGENCY_KEYWORDS)
        assert signals.contains_any("Potrzebuję pomoc", signals.URGENCY_KEYWORDS)
        assert signals.contains_any("Randevu almak istiyorum", signals.PURCHASE_INTENT_KEYWORDS)

    def test_tables_have_no_duplicates(self):
        for table in (
            signals.SERVICE_INTENT_KEYWORDS,
            signals.HIGH_VALUE_SERVICE_KEYWORDS,
            signals.TECHNICAL_KEYWORDS,
        ):
            assert len(table) == len(set(table))


class TestCounting:
    def test_count_occurrences(self):
        assert signals.count_occurrences("Termin? Termin! termin.", "termin") == 3

    def test_count_missing(self):
        assert signals.count_occurrences(None, "termin") == 0
        assert signals.count_occurrences("termin", "") == 0

    def test_transcript_joins_lowercased(self):
        assert signals.transcript(["Hallo", None, "TERMIN"]) == "hallo  termin"


class TestVehicleDetails:
    @pytest.mark.parametrize("text", ["Baujahr 2015", "ca. 80000 km", "Golf Model 7", "EZ 2009"])
    def test_detected(self, text):
        assert signals.has_vehicle_details(text)

    @pytest.mark.parametrize("text", [None, "", "Mein Auto macht Geräusche"])
    def test_not_detected(self, text):
        assert not signals.has_vehicle_details(text)
