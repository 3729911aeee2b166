# ============================================================================
#  sanitizer.py - Field Sanitizer
#  Version: 1.0.0
# ============================================================================
import html
import logging
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict
from bs4 import BeautifulSoup, Tag
from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

ALLOWED_TAGS = {"p", "br", "strong", "b", "em", "i", "u", "ul", "ol", "li", "a",
                "h2", "h3", "h4", "span", "div", "table", "tr", "td", "th"}
ALLOWED_ATTRS = {"a": {"href", "title"}}
DROPPED_TAGS = {"script", "style", "noscript", "iframe", "object", "embed", "meta", "link", "head"}

SKU_MAX_LENGTH = 64

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")
_EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+\-']+@[A-Za-z0-9\-]+(\.[A-Za-z0-9\-]+)*\.[A-Za-z]{2,}$")
_PHONE_STRIP_RE = re.compile(r"[^0-9+\-() ]")
_PHONE_RE = re.compile(r"^[0-9+\-() ]+$")
_POSTCODE_STRIP_RE = re.compile(r"[^0-9A-Za-z]")
_NUMBER_STRIP_RE = re.compile(r"[^0-9,.\-]")
# Any letter makes a string non-numeric ("v2", "12abc")
_LETTER_RE = re.compile(r"[^\W\d_]")
# .NET JSON dates as returned by the Verial web services: /Date(1718000000000+0200)/
_DOTNET_DATE_RE = re.compile(r"^/Date\((-?\d+)([+-]\d{4})?\)/$")

DEFAULTS = {
    "sku": "", "text": "", "html": "", "email": "", "phone": "", "postcode": "",
    "price": 0.0, "float": 0.0, "int": 0, "bool": False, "date": None, "datetime": None,
}


class FieldSanitizer:
    """Type-aware coercion of loosely typed ERP values.

    ``sanitize`` never raises: input that cannot be coerced degrades to the
    kind's default ("" / 0 / None) and the caller decides whether that is fatal.
    ``validate`` is a pure predicate used by the mappers as a gate.
    """

    def __init__(self):
        self._sanitizers: Dict[str, Callable[[Any], Any]] = {
            "sku": self._sku,
            "text": self._text,
            "html": self._html,
            "email": self._email,
            "phone": self._phone,
            "postcode": self._postcode,
            "price": self._price,
            "float": self._float,
            "int": self._int,
            "bool": self._bool,
            "date": self._date,
            "datetime": self._datetime,
        }
        self._validators: Dict[str, Callable[[Any], bool]] = {
            "sku": lambda v: isinstance(v, str) and 0 < len(v) <= SKU_MAX_LENGTH and not _CONTROL_RE.search(v),
            "text": lambda v: isinstance(v, (str, int, float)) and not isinstance(v, bool),
            "html": lambda v: isinstance(v, str),
            "email": lambda v: isinstance(v, str) and bool(_EMAIL_RE.match(v)),
            "phone": lambda v: isinstance(v, str) and bool(_PHONE_RE.match(v)),
            "postcode": lambda v: isinstance(v, str) and v.isalnum(),
            "price": lambda v: to_number(v) is not None and to_number(v) >= 0,
            "float": lambda v: to_number(v) is not None,
            "int": self._is_int,
            "bool": lambda v: v in (0, 1, "0", "1", "true", "false") or isinstance(v, bool),
            "date": lambda v: self._date(v) is not None,
            "datetime": lambda v: self._datetime(v) is not None,
        }

    @property
    def kinds(self):
        return sorted(self._sanitizers)

    def sanitize(self, value: Any, kind: str = "text") -> Any:
        handler = self._sanitizers.get(kind)
        if handler is None:
            logger.warning(f"Unknown sanitize kind '{kind}', treating as text")
            handler = self._text
        if value is None:
            return DEFAULTS.get(kind, "")
        try:
            return handler(value)
        except (ValueError, TypeError, OverflowError) as e:
            logger.debug(f"Could not sanitize {value!r} as {kind}: {e}")
            return DEFAULTS.get(kind, "")

    def validate(self, value: Any, kind: str = "text") -> bool:
        check = self._validators.get(kind)
        if check is None or value is None:
            return False
        try:
            return bool(check(value))
        except (ValueError, TypeError, OverflowError):
            return False

    # --- strings -------------------------------------------------------------

    @staticmethod
    def _sku(value: Any) -> str:
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            return ""
        sku = _CONTROL_RE.sub("", str(value)).strip()
        sku = _WHITESPACE_RE.sub("-", sku)
        return sku[:SKU_MAX_LENGTH]

    @staticmethod
    def _text(value: Any) -> str:
        if isinstance(value, (dict, list, tuple, set)):
            return ""
        text = str(value)
        if "<" in text:
            text = BeautifulSoup(text, "html.parser").get_text(separator=" ")
        text = html.unescape(text)
        text = _CONTROL_RE.sub(" ", text)
        return _WHITESPACE_RE.sub(" ", text).strip()

    @staticmethod
    def _html(value: Any) -> str:
        if isinstance(value, (dict, list, tuple, set)):
            return ""
        soup = BeautifulSoup(str(value), "html.parser")
        for tag in list(soup.find_all(True)):
            if not isinstance(tag, Tag) or tag.decomposed:
                continue
            if tag.name in DROPPED_TAGS:
                tag.decompose()
                continue
            if tag.name not in ALLOWED_TAGS:
                tag.unwrap()
                continue
            allowed = ALLOWED_ATTRS.get(tag.name, set())
            for attr in list(tag.attrs):
                if attr not in allowed:
                    del tag.attrs[attr]
            href = tag.attrs.get("href", "")
            if href and href.strip().lower().startswith("javascript:"):
                del tag.attrs["href"]
        return soup.decode_contents().strip()

    @staticmethod
    def _email(value: Any) -> str:
        if not isinstance(value, str):
            return ""
        return _WHITESPACE_RE.sub("", value).strip().lower()

    @staticmethod
    def _phone(value: Any) -> str:
        if isinstance(value, (dict, list, tuple, set)):
            return ""
        return _PHONE_STRIP_RE.sub("", str(value)).strip()

    @staticmethod
    def _postcode(value: Any) -> str:
        if isinstance(value, (dict, list, tuple, set)):
            return ""
        return _POSTCODE_STRIP_RE.sub("", str(value)).upper()

    # --- numbers -------------------------------------------------------------

    @staticmethod
    def _float(value: Any) -> float:
        number = to_number(value)
        return number if number is not None else 0.0

    def _price(self, value: Any) -> float:
        return max(0.0, round(self._float(value), 6))

    @staticmethod
    def _int(value: Any) -> int:
        number = to_number(value)
        return int(number) if number is not None else 0

    @staticmethod
    def _is_int(value: Any) -> bool:
        if isinstance(value, bool):
            return False
        if isinstance(value, int):
            return True
        if isinstance(value, float):
            return value.is_integer()
        return isinstance(value, str) and bool(re.match(r"^-?\d+$", value.strip()))

    @staticmethod
    def _bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "si", "sí", "on")
        return bool(value)

    # --- dates ---------------------------------------------------------------

    def _date(self, value: Any):
        parsed = _parse_datetime(value)
        return parsed.date().isoformat() if parsed else None

    def _datetime(self, value: Any):
        parsed = _parse_datetime(value)
        return parsed.isoformat() if parsed else None


def to_number(value: Any):
    """Best-effort numeric coercion. Accepts '12,50', '1.234,56' and '€ 9.99', rejects text with letters."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        if _LETTER_RE.search(value):
            return None
        raw = _NUMBER_STRIP_RE.sub("", value.strip())
        if not raw or raw in ("-", ".", ","):
            return None
        if "," in raw and "." in raw:
            # The right-most separator is the decimal one
            if raw.rfind(",") > raw.rfind("."):
                raw = raw.replace(".", "").replace(",", ".")
            else:
                raw = raw.replace(",", "")
        elif "," in raw:
            raw = raw.replace(",", ".")
        try:
            number = float(raw)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _parse_datetime(value: Any):
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    match = _DOTNET_DATE_RE.match(raw)
    if match:
        return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc).replace(tzinfo=None)
    try:
        # Verial sends day-first dates (31/12/2024)
        return date_parser.parse(raw, dayfirst="/" in raw)
    except (ValueError, OverflowError) as e:
        logger.debug(f"Unparseable date {raw!r}: {e}")
        return None
# ============================================================================
# End of sanitizer.py - Version: 1.0.0
# ============================================================================
