from dataclasses import dataclass, field
from typing import Iterable, Sequence

from app.clients.vision import LabelAnnotation

LIKELIHOOD_PROBABILITIES = {
    "VERY_UNLIKELY": 0.0,
    "UNLIKELY": 0.2,
    "POSSIBLE": 0.5,
    "LIKELY": 0.8,
    "VERY_LIKELY": 1.0,
}
UNKNOWN_LIKELIHOOD = 0.5

SAFETY_THRESHOLD = 0.5
SAFETY_REASON_THRESHOLD = 0.6

RELEVANCE_THRESHOLD = 0.3
SECONDARY_LABEL_WEIGHT = 0.7
SECONDARY_SCORE_WEIGHT = 0.3
DIAGNOSTIC_LABELS_LIMIT = 5

SPAM_WINDOW_LIMIT = 10
SPAM_REASON_THRESHOLD = 0.7
SPAM_GATE_THRESHOLD = 0.7

# Термины, которые однозначно относятся к нейл-тематике.
PRIMARY_LABELS = (
    "nail",
    "nail art",
    "nail polish",
    "nail care",
    "nail salon",
    "fingernail",
    "toenail",
    "manicure",
    "pedicure",
    "french manicure",
    "gel nails",
    "acrylic nails",
    "cuticle",
)

# Общие бьюти-термины, которые лишь косвенно указывают на тематику.
SECONDARY_LABELS = (
    "cosmetics",
    "beauty",
    "finger",
    "hand",
    "thumb",
    "glitter",
    "makeup",
    "fashion accessory",
    "jewellery",
    "ring",
    "pattern",
    "paint",
)

ADULT_REASON = "Adult content"
VIOLENCE_REASON = "Violence"
RACY_REASON = "Racy content"
NOT_RELEVANT_REASON = "Content does not appear to be nail-related"
SPAM_REASON = "Rapid submission pattern detected"


@dataclass(frozen=True)
class SafetyScore:
    inappropriate_score: float
    safe: bool
    reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RelevanceScore:
    relevance_score: float
    is_relevant: bool
    detected_labels: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SpamScore:
    spam_score: float
    reasons: list[str] = field(default_factory=list)


def likelihood_to_probability(level: str | None) -> float:
    '''
    переводит категориальную оценку SafeSearch в вероятность
    нераспознанное или отсутствующее значение – середина шкалы
    '''
    if level is None:
        return UNKNOWN_LIKELIHOOD
    return LIKELIHOOD_PROBABILITIES.get(str(level).upper(), UNKNOWN_LIKELIHOOD)


def score_safety(adult: float, violence: float, racy: float) -> SafetyScore:
    """
    Итоговая оценка – максимум по трем осям, safe при оценке строго ниже 0.5.
    Причины считаются независимо от итоговой оценки, по порогу 0.6.
    """
    inappropriate_score = max(adult, violence, racy)
    reasons = []
    if adult > SAFETY_REASON_THRESHOLD:
        reasons.append(ADULT_REASON)
    if violence > SAFETY_REASON_THRESHOLD:
        reasons.append(VIOLENCE_REASON)
    if racy > SAFETY_REASON_THRESHOLD:
        reasons.append(RACY_REASON)
    return SafetyScore(
        inappropriate_score=inappropriate_score,
        safe=inappropriate_score < SAFETY_THRESHOLD,
        reasons=reasons,
    )


def _matches_any(label: str, vocabulary: Iterable[str]) -> bool:
    return any(label in term or term in label for term in vocabulary)


def score_relevance(labels: Sequence[LabelAnnotation]) -> RelevanceScore:
    """
    Оценивает тематическую релевантность по найденным меткам.

    Для основного словаря берется максимальная уверенность среди совпавших меток,
    для вспомогательного – максимум уверенности с весом 0.7. Итог:
    min(1, primary + secondary * 0.3), релевантно при итоге не ниже 0.3.
    """
    primary_score = 0.0
    secondary_score = 0.0
    detected_labels = []

    for label in labels:
        name = label.description.strip().lower()
        if not name:
            continue
        detected_labels.append(name)
        if _matches_any(name, PRIMARY_LABELS):
            primary_score = max(primary_score, label.score)
        if _matches_any(name, SECONDARY_LABELS):
            secondary_score = max(secondary_score, label.score * SECONDARY_LABEL_WEIGHT)

    relevance_score = min(1.0, primary_score + secondary_score * SECONDARY_SCORE_WEIGHT)
    is_relevant = relevance_score >= RELEVANCE_THRESHOLD

    detected_labels = list(dict.fromkeys(detected_labels))

    reasons = []
    if not is_relevant:
        reasons.append(NOT_RELEVANT_REASON)
        if detected_labels:
            shown = ", ".join(detected_labels[:DIAGNOSTIC_LABELS_LIMIT])
            reasons.append(f"Detected: {shown}")

    return RelevanceScore(
        relevance_score=relevance_score,
        is_relevant=is_relevant,
        detected_labels=detected_labels[:10],
        reasons=reasons,
    )


def score_spam(recent_count: int) -> SpamScore:
    '''
    более 10 заявок за последний час – уверенный спам
    '''
    spam_score = min(max(recent_count, 0) / SPAM_WINDOW_LIMIT, 1.0)
    reasons = [SPAM_REASON] if spam_score > SPAM_REASON_THRESHOLD else []
    return SpamScore(spam_score=spam_score, reasons=reasons)
