# palettes.py

import re
from dataclasses import dataclass
from typing import Optional

from shared.models import StyleTheme


@dataclass(frozen=True)
class TextPalette:
    name: str
    title: str
    subtitle: str
    content: str
    bullet: str
    page_number: str


# Dark text, for bright backgrounds
DARK_TEXT = TextPalette(
    name="dark",
    title="1A1A1A",
    subtitle="333333",
    content="444444",
    bullet="1A1A1A",
    page_number="666666",
)

# Light text, for dark backgrounds
LIGHT_TEXT = TextPalette(
    name="light",
    title="FFFFFF",
    subtitle="E0E0E0",
    content="DDDDDD",
    bullet="FFFFFF",
    page_number="AAAAAA",
)

# Slides without art: light text on a fixed dark canvas
DEFAULT_PALETTE = LIGHT_TEXT
PLAIN_CANVAS = "1F2937"

DEFAULT_ACCENT = "3B82F6"

# Colour words a theme's colorTone may mention, mapped to accent colours.
TONE_ACCENTS = {
    "blue": "3B82F6",
    "navy": "1D4ED8",
    "indigo": "6366F1",
    "purple": "A855F7",
    "violet": "6D28D9",
    "green": "16A34A",
    "forest": "15803D",
    "teal": "0D9488",
    "orange": "F97316",
    "sunset": "EA580C",
    "warm": "EA580C",
    "red": "DC2626",
    "pink": "EC4899",
    "gold": "D4A017",
    "yellow": "FBF30D",
    "sepia": "A0522D",
    "vintage": "A0522D",
    "gray": "6E6E6E",
    "grey": "6E6E6E",
    "black": "4A4A4A",
}

_HEX_PATTERN = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def normalize_hex(value: Optional[str]) -> Optional[str]:
    """'#abc', 'abc', '#aabbcc' and 'aabbcc' all become 'AABBCC'. Anything else is None."""
    if not value:
        return None
    match = _HEX_PATTERN.match(value.strip())
    if not match:
        return None
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return digits.upper()


def accent_for_theme(theme: Optional[StyleTheme]) -> str:
    """The colour word that appears first in the theme's colour tone decides the accent."""
    if theme is None:
        return DEFAULT_ACCENT
    tone = theme.color_tone.lower()
    hits = [(tone.find(word), color) for word, color in TONE_ACCENTS.items() if word in tone]
    if not hits:
        return DEFAULT_ACCENT
    return min(hits)[1]
