"""Language identification for text insight and vision capture input.

Responsibilities:
- Identify the input language with `langdetect` using a fixed seed.
- Reduce detector codes such as `zh-cn` to a primary subtag.
- Always return a well-formed language tag; `und` marks an undetermined language.
"""

from __future__ import annotations

from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException


UNDETERMINED = "und"

DetectorFactory.seed = 0


def detect_language(text: str) -> str:
    """Return a primary language subtag for `text`.

    Empty or symbol-only input yields `und`; detection never raises.
    """

    if not text or not text.strip():
        return UNDETERMINED
    try:
        code = detect(text)
    except LangDetectException:
        return UNDETERMINED
    primary = code.split("-", 1)[0].strip().lower()
    return primary or UNDETERMINED
