"""Tests for decoding filesystem-safe origin directory names."""

import pytest

from idbbrowser.utils.errors_utils import DecodeError
from idbbrowser.utils.origin_codec import decode, decode_label


class TestDecode:
    def test_scheme_host_and_port(self):
        assert decode("https+example.com+443") == "https://example.com:443"

    def test_separators_from_scheme_are_dropped(self):
        """Firefox encodes "://" as "+++"; the empty parts disappear."""
        assert decode("https+++example.com+8443") == "https://example.com:8443"

    def test_without_port(self):
        assert decode("http+++localhost") == "http://localhost"

    def test_single_part_passes_through(self):
        assert decode("chrome") == "chrome"

    def test_application_prefix(self):
        assert (
            decode("1007+t+https+++app.example.org")
            == "1007+t+https://app.example.org"
        )

    def test_application_prefix_with_port(self):
        assert decode("55+f+http+++localhost+8080") == "55+f+http://localhost:8080"

    def test_file_origin_with_drive_letter(self):
        assert (
            decode("file++++C+Users+me+page.html", drive_letters=True)
            == "file://C:/Users/me/page.html"
        )

    def test_file_origin_without_drive_letter(self):
        assert (
            decode("file++++home+me+page.html", drive_letters=False)
            == "file://home/me/page.html"
        )

    def test_file_origin_with_nothing_after_scheme(self):
        assert decode("file+++", drive_letters=False) == "file://"

    def test_all_digit_host_is_taken_as_port(self):
        """Known ambiguity: the last all-digit component always becomes a port."""
        assert decode("http+++10+0+0+1") == "http://1000:1"

    def test_single_host_part_is_never_a_port(self):
        assert decode("http+++8080") == "http://8080"

    def test_empty_name_is_rejected(self):
        with pytest.raises(DecodeError):
            decode("")

    def test_prefix_without_origin_is_rejected(self):
        with pytest.raises(DecodeError):
            decode("1007+t")

    def test_scheme_without_host_is_rejected(self):
        with pytest.raises(DecodeError):
            decode("moz-extension+++")


class TestDecodeLabel:
    def test_decodes_valid_names(self):
        assert decode_label("https+++example.com") == "https://example.com"

    def test_falls_back_to_raw_name(self):
        assert decode_label("1007+t") == "1007+t"
        assert decode_label("moz-extension+++") == "moz-extension+++"
