"""Product code (hinban) normalization and variation utilities.

Absorbs notation differences such as MIDE-001 / mide001 / mide00001.

Supported shapes:
- FANZA: MIDE-001, mide00001, FANZA-mide00001
- MGS: 259luxu-1234, 259LUXU1234
- DTI: 123456_01, CARIBBEAN-123456
- TMP: 4037-PPV2543, HEYDOUGA-4037-PPV2543
"""

import re
from typing import List, Optional

ASP_PREFIXES = [
    "FANZA",
    "MGS",
    "DUGA",
    "SOKMIL",
    "B10F",
    "FC2",
    "JAPANSKA",
    "CARIBBEAN",
    "CARIBBEANCOMPR",
    "1PONDO",
    "HEYZO",
    "10MUSUME",
    "PACOPACOMAMA",
    "H4610",
    "H0930",
    "C0930",
    "GACHINCO",
    "KIN8TENGOKU",
    "NYOSHIN",
    "HEYDOUGA",
    "X1X",
    "ENKOU55",
    "UREKKO",
    "XXXURABI",
    "TOKYOHOT",
    "TVDEAV",
]

_STANDARD_RE = re.compile(r"^([a-zA-Z]+)[-_]?(\d+)$")
_FANZA_RE = re.compile(r"^([a-zA-Z]+)(\d{5})$")
_MGS_RE = re.compile(r"^(\d+)([a-zA-Z]+)[-_]?(\d+)$")
_TMP_RE = re.compile(r"^(\d+)[-_]?(PPV)(\d+)$", re.IGNORECASE)
_DTI_RE = re.compile(r"^(\d+)_(\d+)$")


def normalize_product_id_for_search(product_id: str) -> str:
    """Lowercase and drop separators: 'MIDE-001' -> 'mide001'."""
    return re.sub(r"[-_\s]", "", product_id.strip().lower())


def strip_asp_prefix(product_id: str) -> str:
    """Remove a leading ASP prefix: 'CARIBBEAN-123456' -> '123456'."""
    upper = product_id.upper()
    for prefix in ASP_PREFIXES:
        if upper.startswith(prefix + "-"):
            return product_id[len(prefix) + 1 :]
    return product_id


def _add_cases(variations: List[str], value: str):
    for candidate in (value, value.lower(), value.upper()):
        if candidate not in variations:
            variations.append(candidate)


def _add(variations: List[str], value: str):
    if value not in variations:
        variations.append(value)


def _add_padding_variations(variations: List[str], prefix: str, num: int):
    num_str = str(num)
    padded3 = num_str.zfill(3)
    padded5 = num_str.zfill(5)

    numbers = [num_str]
    if padded3 != num_str:
        numbers.append(padded3)
    if padded5 not in (num_str, padded3):
        numbers.append(padded5)

    for number in numbers:
        _add_cases(variations, f"{prefix}-{number}")
        _add_cases(variations, f"{prefix}{number}")


def generate_product_id_variations(product_id: str) -> List[str]:
    """Every spelling of a product code worth matching against stored ids.

    Covers case, separators, zero padding (3 and 5 digits), FANZA prefixes
    and the MGS, TMP and DTI numeric shapes. Order is stable, original first.
    """
    variations: List[str] = []
    trimmed = product_id.strip()
    stripped = strip_asp_prefix(trimmed)
    ids_to_process = [trimmed, stripped] if stripped != trimmed else [trimmed]

    for base_id in ids_to_process:
        _add_cases(variations, base_id)
        _add_cases(variations, re.sub(r"[-_]", "", base_id))

        with_hyphen = re.sub(r"([a-zA-Z]+)(\d+)", r"\1-\2", base_id)
        if with_hyphen != base_id:
            _add_cases(variations, with_hyphen)

        match = _STANDARD_RE.match(base_id)
        if match:
            _add_padding_variations(variations, match.group(1), int(match.group(2)))

        match = _FANZA_RE.match(base_id)
        if match:
            prefix, digits = match.group(1), match.group(2)
            _add_padding_variations(variations, prefix, int(digits))
            _add(variations, f"FANZA-{prefix.lower()}{digits}")
            _add(variations, f"fanza-{prefix.lower()}{digits}")

        match = _MGS_RE.match(base_id)
        if match:
            num_prefix, letters, suffix = match.groups()
            _add(variations, f"{num_prefix}{letters}-{suffix}")
            _add(variations, f"{num_prefix}{letters.lower()}-{suffix}")
            _add(variations, f"{num_prefix}{letters}{suffix}")
            _add(variations, f"{num_prefix}{letters.lower()}{suffix}")

        match = _TMP_RE.match(base_id)
        if match:
            num1, ppv, num2 = match.groups()
            _add(variations, f"{num1}-{ppv.upper()}{num2}")
            _add(variations, f"{num1}-{ppv.lower()}{num2}")
            _add(variations, f"{num1}{ppv.upper()}{num2}")
            _add(variations, f"{num1}{ppv.lower()}{num2}")

        match = _DTI_RE.match(base_id)
        if match:
            main, sub = match.groups()
            _add(variations, f"{main}_{sub}")
            _add(variations, f"{main}-{sub}")
            _add(variations, f"{main}{sub}")

    return variations


def match_product_id(id1: str, id2: str) -> bool:
    return normalize_product_id_for_search(id1) == normalize_product_id_for_search(id2)


def product_id_to_like_pattern(product_id: str) -> str:
    """SQL LIKE pattern tolerant of a separator: 'MIDE-001' -> 'mide%001'."""
    normalized = product_id.strip().lower()
    return re.sub(r"([a-z]+)[-_]?(\d+)", r"\1%\2", normalized, count=1)


def format_product_code_for_display(code: Optional[str]) -> Optional[str]:
    """Format a product code as PREFIX-NUMBER.

    Maker number prefixes are dropped except for 300-series codes:

        107START-470  -> START-470
        ssis00865     -> SSIS-865
        h_1234abc00123 -> ABC-123
        300mium01359  -> 300MIUM-1359

    Unparseable codes are returned upper-cased.
    """
    if not code or not isinstance(code, str):
        return None

    value = code.strip().upper()
    if not value:
        return None

    value = re.sub(r"^H_\d+", "", value)
    if not re.match(r"^300[A-Z]+", value):
        value = re.sub(r"^\d+(?=[A-Z])", "", value)

    for pattern in (r"^(\d*[A-Z]+)-(\d+)$", r"^(\d+[A-Z]+)(\d+)$", r"^([A-Z]+)(\d+)$"):
        match = re.match(pattern, value)
        if match:
            number = match.group(2).lstrip("0") or "0"
            return f"{match.group(1)}-{number}"

    return code.upper()


def extract_maker_code(original_id: Optional[str]) -> Optional[str]:
    """Display code when original_id looks like a maker product code, else None."""
    if not original_id:
        return None
    candidate = strip_asp_prefix(original_id.strip())
    if not re.match(r"^(?:h_\d+)?\d*[a-zA-Z]{2,}[-_]?\d{2,}$", candidate, re.IGNORECASE):
        return None
    return format_product_code_for_display(candidate)
