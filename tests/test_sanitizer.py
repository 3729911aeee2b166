import pytest

from sanitizer import FieldSanitizer, to_number


@pytest.mark.parametrize("raw, expected", [
    ("12,50", 12.5),
    ("1.234,56", 1234.56),
    ("1,234.56", 1234.56),
    ("€ 9.99", 9.99),
    (7, 7.0),
    ("abc", None),
    ("v2", None),
    ("12abc", None),
    (None, None),
    (True, None),
])
def test_to_number(raw, expected):
    assert to_number(raw) == expected


def test_sku_is_trimmed_and_control_chars_removed(sanitizer):
    assert sanitizer.sanitize("  AB\x00C 12 ", "sku") == "ABC-12"
    assert sanitizer.sanitize(8412345678901.0, "sku") == "8412345678901"
    assert not sanitizer.validate("", "sku")


def test_price_clamps_negative_and_never_raises(sanitizer):
    assert sanitizer.sanitize("-3,5", "price") == 0.0
    assert sanitizer.sanitize("19,90", "price") == 19.9
    assert sanitizer.sanitize({"nested": 1}, "price") == 0.0
    assert sanitizer.sanitize(None, "int") == 0


def test_email_normalized_and_validated(sanitizer):
    email = sanitizer.sanitize(" Ana.Garcia@Example.COM ", "email")
    assert email == "ana.garcia@example.com"
    assert sanitizer.validate(email, "email")
    assert not sanitizer.validate("not-an-email", "email")


def test_html_keeps_allow_list_only(sanitizer):
    raw = '<p onclick="x()">Hola <script>alert(1)</script><b>mundo</b> <a href="javascript:x">l</a><font>f</font></p>'
    clean = sanitizer.sanitize(raw, "html")
    assert "script" not in clean
    assert "onclick" not in clean
    assert "<b>mundo</b>" in clean
    assert "javascript" not in clean
    assert "<font>" not in clean and "f" in clean


def test_text_strips_tags_and_entities(sanitizer):
    assert sanitizer.sanitize("<b>Caf&eacute;</b>   con  leche", "text") == "Café con leche"


def test_dates_are_normalized_to_iso(sanitizer):
    assert sanitizer.sanitize("31/12/2024", "date") == "2024-12-31"
    assert sanitizer.sanitize("2024-06-10 14:30:00", "datetime") == "2024-06-10T14:30:00"
    assert sanitizer.sanitize("/Date(0+0000)/", "date") == "1970-01-01"
    assert sanitizer.sanitize("no es fecha", "date") is None


def test_postcode_and_phone(sanitizer):
    assert sanitizer.sanitize(" 28-001 ", "postcode") == "28001"
    assert sanitizer.sanitize("+34 600 (123) abc", "phone") == "+34 600 (123)"


def test_unknown_kind_falls_back_to_text():
    assert FieldSanitizer().sanitize("  hola  ", "nope") == "hola"
