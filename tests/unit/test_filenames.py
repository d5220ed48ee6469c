"""Storage-safe filename normalization."""

import re

from xfactor_api.services.filenames import build_object_name, safe_storage_name, split_extension, transliterate


class TestSafeStorageName:
    def test_hebrew_is_transliterated(self):
        assert safe_storage_name("חוברת עבודה.pdf") == "hvbrt_abvdh"

    def test_final_letter_forms(self):
        assert transliterate("שלום") == "shlvm"
        assert transliterate("ארץ") == "artz"

    def test_latin_accents_decomposed(self):
        assert safe_storage_name("Résumé Final.PDF") == "resume_final"

    def test_percent_encoding_is_decoded_first(self):
        assert safe_storage_name("Q3%20report%23v2.pdf") == "q3_report_v2"

    def test_punctuation_collapsed_and_trimmed(self):
        assert safe_storage_name("__--Team  plan!!  (v2)--__.pdf") == "team_plan_v2"

    def test_deterministic(self):
        assert safe_storage_name("מצגת סיכום.pdf") == safe_storage_name("מצגת סיכום.pdf")

    def test_short_or_empty_names_fall_back_to_hash(self):
        fallback = safe_storage_name("!!.pdf")
        assert re.fullmatch(r"file_[0-9a-f]{8}", fallback)
        assert fallback == safe_storage_name("!!.pdf")
        assert fallback != safe_storage_name("??.pdf")

    def test_non_latin_scripts_without_decomposition_fall_back(self):
        assert safe_storage_name("报告.pdf").startswith("file_")


def test_split_extension():
    assert split_extension("deck.final.PDF") == ("deck.final", "pdf")
    assert split_extension("README") == ("README", None)


def test_build_object_name_layout():
    name = build_object_name("חוברת עבודה.pdf", "lesson_materials")
    assert re.fullmatch(r"lesson_materials/\d{13}_[0-9a-f]{8}_hvbrt_abvdh\.pdf", name)
    assert name.isascii()
