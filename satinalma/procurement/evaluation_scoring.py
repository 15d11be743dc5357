from __future__ import annotations

import math
from typing import Any, Dict, Iterable, Tuple


SECTIONS = ("A", "B", "C")

DEFAULT_WEIGHTS: Dict[str, Tuple[float, float, float]] = {
    "malzeme": (0.4, 0.4, 0.2),
    "hizmet": (0.3, 0.5, 0.2),
    "danismanlik": (0.2, 0.4, 0.4),
    "bakim": (0.5, 0.4, 0.1),
    "insaat": (0.4, 0.5, 0.1),
}

OPTION_VALUES = {"o1": 5.0, "o2": 4.0, "o3": 3.0, "o4": 2.0}

CONTRACTOR_SCORING_TYPE = "insaat"


def answer_value(raw: Any) -> float:
    text = str(raw if raw is not None else "").strip()
    try:
        number = float(text)
    except ValueError:
        number = None
    if number is not None and math.isfinite(number) and number >= 0:
        return number
    return OPTION_VALUES.get(text.lower(), 0.0)


def resolve_weights(scoring_type: str, configured: Dict[str, Any] | None = None) -> Tuple[Dict[str, float], str]:
    if configured:
        return (
            {
                "A": float(configured.get("weight_a") if configured.get("weight_a") is not None else 0.4),
                "B": float(configured.get("weight_b") if configured.get("weight_b") is not None else 0.3),
                "C": float(configured.get("weight_c") if configured.get("weight_c") is not None else 0.3),
            },
            "database",
        )
    defaults = DEFAULT_WEIGHTS.get(str(scoring_type or "").strip().lower())
    if defaults:
        return dict(zip(SECTIONS, defaults)), "default"
    return {section: 1 / 3 for section in SECTIONS}, "equal"


def section_averages(answers: Iterable[Tuple[str, float]]) -> Dict[str, float]:
    buckets: Dict[str, list] = {section: [] for section in SECTIONS}
    for section, value in answers:
        key = str(section or "").strip().upper()
        if key in buckets:
            buckets[key].append(float(value))
    return {section: (sum(values) / len(values) if values else 0.0) for section, values in buckets.items()}


def overall_rating(averages: Dict[str, float], weights: Dict[str, float]) -> float:
    return round(sum(averages.get(section, 0.0) * weights.get(section, 0.0) for section in SECTIONS), 2)


def score_percent(rating: float) -> float:
    return round(rating / 5 * 100, 2)


def decision_for(rating: float, scoring_type: str | None = None) -> str:
    contractor = str(scoring_type or "").strip().lower() == CONTRACTOR_SCORING_TYPE
    if rating >= 4.5:
        return "Onaylı Yüklenici" if contractor else "Onaylı Tedarikçi"
    if rating >= 3.5:
        return "Çalışılabilir Yüklenici" if contractor else "Çalışılabilir"
    if rating >= 2.5:
        return "Şartlı Yüklenici" if contractor else "Şartlı Çalışılabilir"
    if rating >= 1.0:
        return "Yetersiz"
    return "Belirsiz"


def evaluate(answers: Iterable[Tuple[str, Any]], scoring_type: str, configured: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Scores ``(section, raw_value)`` pairs with the weights for ``scoring_type``."""
    numeric = [(section, answer_value(raw)) for section, raw in answers]
    averages = section_averages(numeric)
    weights, source = resolve_weights(scoring_type, configured)
    rating = overall_rating(averages, weights)
    return {
        "avg_a": averages["A"],
        "avg_b": averages["B"],
        "avg_c": averages["C"],
        "weights": weights,
        "weights_source": source,
        "overall_rating": rating,
        "score": score_percent(rating),
        "decision": decision_for(rating, scoring_type),
    }
