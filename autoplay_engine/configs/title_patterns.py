"""Regular expressions used to clean and classify track titles."""

import re

# Bracketed groups made only of marketing vocabulary are dropped entirely.
MARKETING_BRACKET = re.compile(
    r"[\(\[\{]\s*(?:"
    r"official(?:\s+(?:music|lyrics?|hd|4k|performance))?(?:\s+(?:video|audio|visuali[sz]er|clip|version|mv))?"
    r"|(?:music|lyrics?)\s+video"
    r"|lyrics?"
    r"|with\s+lyrics?"
    r"|audio(?:\s+only)?"
    r"|visuali[sz]er"
    r"|remaster(?:ed)?(?:\s+(?:19|20)\d{2})?(?:\s+version)?"
    r"|(?:19|20)\d{2}\s+remaster(?:ed)?"
    r"|hd|hq|4k|explicit|clean|mv|m/v"
    r")\s*[\)\]\}]",
    re.IGNORECASE,
)

# Marketing phrases that also appear outside brackets, usually as suffixes.
MARKETING_SUFFIXES = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bofficial\s+(?:music\s+)?video\b",
        r"\bofficial\s+lyrics?\s+video\b",
        r"\bofficial\s+audio\b",
        r"\bofficial\s+visuali[sz]er\b",
        r"\blyrics?\s+video\b",
        r"\bwith\s+lyrics?\b",
        r"\blyrics?\b",
        r"\bremaster(?:ed)?(?:\s+(?:19|20)\d{2})?\b",
        r"\b(?:hd|hq|4k)\b",
    )
]

# Titles that describe an alternate take of a song rather than the song itself.
VARIANT_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bremix(?:ed)?\b",
        r"\brmx\b",
        r"\blive\b",
        r"\bao\s+vivo\b",
        r"\bremaster(?:ed)?\b",
        r"\bcover\b",
        r"\bkaraoke\b",
        r"\binstrumental\b",
        r"\bsped\s+up\b",
        r"\bslowed\b",
        r"\bnightcore\b",
        r"\b8d\s+audio\b",
        r"\bmashup\b",
        r"\bbootleg\b",
    )
]

YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}\b")
LIVE_PATTERN = re.compile(r"\b(?:live|ao\s+vivo|en\s+vivo)\b", re.IGNORECASE)
ACOUSTIC_PATTERN = re.compile(r"\b(?:acoustic|acustic[oa]?|unplugged)\b", re.IGNORECASE)

GENRE_KEYWORDS = (
    "rock",
    "pop",
    "jazz",
    "blues",
    "country",
    "folk",
    "rap",
    "hip hop",
    "metal",
    "classical",
    "electronic",
    "dance",
    "reggae",
    "funk",
    "soul",
    "r&b",
    "indie",
    "alternative",
    "punk",
    "grunge",
    "disco",
    "techno",
    "house",
    "trance",
    "ambient",
    "samba",
    "forro",
    "sertanejo",
    "mpb",
    "pagode",
    "axé",
    "gospel",
    "lofi",
    "k-pop",
)
