"""
component_classifier.py — Keyword classification of quotation components.

Classifies components into hardware / software / labor (with labor subtype)
and detects robot content for quotation statistics.  Keywords are English and
Hebrew, matched as case-insensitive substrings.

The keyword dataset is business data, not logic: it is read from
``cpq/resources/classifier_keywords.json`` or from the file named by the
``CPQ_CLASSIFIER_KEYWORDS`` environment variable.
"""

import functools
import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional

from cpq.config import CLASSIFIER_KEYWORDS_ENV

logger = logging.getLogger("cpq-classifier")

_DEFAULT_KEYWORDS_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "resources",
    "classifier_keywords.json",
)

_KEYWORD_GROUPS = ("software", "labor", "engineering", "commissioning", "installation", "robot")

# Confidence given to the hardware fallback
_DEFAULT_HARDWARE_CONFIDENCE: float = 0.7


@functools.lru_cache(maxsize=None)
def load_keywords(path: Optional[str] = None) -> Dict[str, tuple]:
    """
    Load the keyword groups from JSON.

    ``path`` defaults to $CPQ_CLASSIFIER_KEYWORDS, then the bundled file.
    Missing groups load as empty tuples.
    """
    resolved = path or os.getenv(CLASSIFIER_KEYWORDS_ENV) or _DEFAULT_KEYWORDS_PATH
    with open(resolved, "r", encoding="utf-8") as f:
        raw = json.load(f)
    keywords = {group: tuple(raw.get(group, [])) for group in _KEYWORD_GROUPS}
    logger.debug("classifier keywords loaded", extra={"path": resolved})
    return keywords


def robot_keywords() -> tuple:
    return load_keywords()["robot"]


def contains_keywords(text: str, keywords: Iterable[str]) -> List[str]:
    """Return every keyword found in ``text`` (case-insensitive substring)."""
    lower_text = text.lower()
    return [kw for kw in keywords if kw.lower() in lower_text]


def _combined_text(*parts: Optional[str]) -> str:
    return " ".join(p for p in parts if p)


def _confidence(keyword_matches: int, text_length: int) -> float:
    confidence = min(0.3 + keyword_matches * 0.2, 1.0)
    # Very short text is less reliable
    if text_length < 10:
        confidence *= 0.8
    return round(confidence, 2)


def classify_labor_subtype(text: str) -> Dict[str, Any]:
    """Engineering, then commissioning, then installation; default engineering."""
    keywords = load_keywords()
    for subtype in ("engineering", "commissioning", "installation"):
        matches = contains_keywords(text, keywords[subtype])
        if matches:
            return {"subtype": subtype, "keywords": matches}
    return {"subtype": "engineering", "keywords": []}


def classify_component(
    name: str,
    category: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Suggest component_type (and labor_subtype) for a component.

    Software keywords are checked first, then labor keywords; anything else
    defaults to hardware.

    Returns:
        Dict with component_type, labor_subtype (labor only), confidence,
        reasoning, keywords.
    """
    keywords = load_keywords()
    text = _combined_text(name, category, description)

    software_matches = contains_keywords(text, keywords["software"])
    if software_matches:
        return {
            "component_type": "software",
            "confidence": _confidence(len(software_matches), len(text)),
            "reasoning": "Detected software-related keywords",
            "keywords": software_matches,
        }

    labor_matches = contains_keywords(text, keywords["labor"])
    if labor_matches:
        subtype = classify_labor_subtype(text)
        return {
            "component_type": "labor",
            "labor_subtype": subtype["subtype"],
            "confidence": _confidence(len(labor_matches) + len(subtype["keywords"]), len(text)),
            "reasoning": f"Detected labor-related keywords ({subtype['subtype']})",
            "keywords": labor_matches + subtype["keywords"],
        }

    return {
        "component_type": "hardware",
        "confidence": _DEFAULT_HARDWARE_CONFIDENCE,
        "reasoning": "No software or labor keywords found - defaulting to hardware",
        "keywords": [],
    }


def is_robot_component(
    name: str,
    category: Optional[str] = None,
    description: Optional[str] = None,
    keywords: Optional[Iterable[str]] = None,
) -> bool:
    text = _combined_text(name, category, description)
    return bool(contains_keywords(text, keywords if keywords is not None else robot_keywords()))


def classify_by_category(category: str) -> str:
    """Map a library category name onto a component type."""
    lower = category.lower()
    if any(kw in lower for kw in ("software", "license", "תוכנה", "רישיון")):
        return "software"
    if any(kw in lower for kw in ("labor", "work", "service", "עבודה", "שירות", "הנדסה", "הרצה")):
        return "labor"
    return "hardware"


def get_confidence_label(confidence: float) -> str:
    if confidence >= 0.8:
        return "High"
    if confidence >= 0.5:
        return "Medium"
    return "Low"
