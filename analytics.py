"""Spending analytics computed from a user's transaction history.

Everything here is a pure function over rows already fetched by the service
layer, so results depend only on the arguments and can be recomputed on every
request.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Optional, Sequence

KeywordTable = tuple[tuple[str, tuple[str, ...]], ...]

FALLBACK_CATEGORY = "Other"
SIMILARITY_THRESHOLD = 0.3
REDUCE_SPENDING_RATIO = 1.2
BUDGET_REVIEW_RATIO = 1.1
ABOVE_USUAL_RATIO = 1.1
PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}


@dataclass(frozen=True)
class ExpenseRecord:
    category: str
    amount_cents: int
    date: date
    description: Optional[str] = None
    id: Optional[int] = None

    @property
    def amount(self) -> float:
        return self.amount_cents / 100


@dataclass(frozen=True)
class Prediction:
    predicted: float
    average: float
    trend: str

    def as_json(self) -> dict[str, object]:
        return {
            "predicted": self.predicted,
            "average": self.average,
            "trend": self.trend,
        }


@dataclass(frozen=True)
class Anomaly:
    type: str
    amount: float
    date: date
    threshold: float
    severity: str
    category: Optional[str] = None
    description: Optional[str] = None
    transaction_id: Optional[int] = None

    def as_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "type": self.type,
            "amount": self.amount,
            "date": self.date.isoformat(),
            "threshold": self.threshold,
            "severity": self.severity,
        }
        if self.category is not None:
            out["category"] = self.category
        if self.type == "high_amount":
            out["description"] = self.description
            out["transactionId"] = self.transaction_id
        return out


@dataclass(frozen=True)
class Suggestion:
    type: str
    message: str
    priority: str
    category: Optional[str] = None
    potential_savings: Optional[float] = None

    def as_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "type": self.type,
            "message": self.message,
            "priority": self.priority,
        }
        if self.category is not None:
            out["category"] = self.category
        if self.potential_savings is not None:
            out["potentialSavings"] = self.potential_savings
        return out


@dataclass(frozen=True)
class SpendingInsight:
    category: str
    message: str
    current: float
    average: float

    def as_json(self) -> dict[str, object]:
        return {
            "category": self.category,
            "message": self.message,
            "current": self.current,
            "average": self.average,
        }


# Categorization


def match_keywords(text: str, table: KeywordTable) -> Optional[str]:
    lowered = text.lower()
    for category, keywords in table:
        if any(keyword in lowered for keyword in keywords):
            return category
    return None


def jaccard_similarity(text1: str, text2: str) -> float:
    words1 = set(text1.split())
    words2 = set(text2.split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def best_historical_category(
    text: str, history: Iterable[tuple[Optional[str], Optional[str]]]
) -> str:
    """Pick the category whose past descriptions look most like ``text``.

    ``history`` yields ``(description, category)`` pairs. Similarity scores are
    summed per category and the winner must score above ``SIMILARITY_THRESHOLD``;
    among equal scores the category seen first wins.
    """
    lowered = text.lower()
    scores: dict[str, float] = {}
    for description, category in history:
        if not description:
            continue
        label = category or FALLBACK_CATEGORY
        scores[label] = scores.get(label, 0.0) + jaccard_similarity(
            lowered, description.lower()
        )

    best: Optional[str] = None
    best_score = 0.0
    for label, score in scores.items():
        if best is None or score > best_score:
            best = label
            best_score = score
    if best is not None and best_score > SIMILARITY_THRESHOLD:
        return best
    return FALLBACK_CATEGORY


def categorize(
    text: Optional[str],
    table: KeywordTable,
    load_history: Callable[[], Sequence[tuple[Optional[str], Optional[str]]]],
) -> str:
    """Keyword table first, then similarity against the user's own history.

    ``load_history`` is only called when no keyword matches.
    """
    if not text or not text.strip():
        return FALLBACK_CATEGORY
    matched = match_keywords(text, table)
    if matched is not None:
        return matched
    history = load_history()
    if not history:
        return FALLBACK_CATEGORY
    return best_historical_category(text, history)


# Prediction


def linear_trend(values: Sequence[float]) -> float:
    """Least-squares slope of ``values`` against their index."""
    n = len(values)
    if n < 2:
        return 0.0
    xs = range(n)
    sum_x = sum(xs)
    sum_y = sum(values)
    sum_xy = sum(x * y for x, y in zip(xs, values))
    sum_xx = sum(x * x for x in xs)
    return (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)


def trend_label(slope: float) -> str:
    if slope > 0:
        return "increasing"
    if slope < 0:
        return "decreasing"
    return "stable"


def monthly_sums(records: Iterable[ExpenseRecord]) -> dict[str, list[float]]:
    """Per-category monthly totals in chronological order.

    Months without spending are absent rather than zero, so the series index
    counts active months only.
    """
    buckets: dict[str, dict[tuple[int, int], int]] = defaultdict(dict)
    for record in records:
        category = record.category or FALLBACK_CATEGORY
        key = (record.date.year, record.date.month)
        per_month = buckets[category]
        per_month[key] = per_month.get(key, 0) + record.amount_cents
    return {
        category: [per_month[key] / 100 for key in sorted(per_month)]
        for category, per_month in buckets.items()
    }


def predict_expenses(records: Iterable[ExpenseRecord]) -> dict[str, Prediction]:
    predictions: dict[str, Prediction] = {}
    for category, amounts in monthly_sums(records).items():
        if len(amounts) < 2:
            continue
        average = sum(amounts) / len(amounts)
        slope = linear_trend(amounts)
        predictions[category] = Prediction(
            predicted=max(0.0, average + slope),
            average=average,
            trend=trend_label(slope),
        )
    return predictions


# Anomalies


def _severity(amount: float, threshold: float) -> str:
    return "high" if amount > threshold * 2 else "medium"


def iqr_threshold(amounts: Sequence[float]) -> float:
    ordered = sorted(amounts)
    n = len(ordered)
    q1 = ordered[int(n * 0.25)]
    q3 = ordered[int(n * 0.75)]
    return q3 + 1.5 * (q3 - q1)


def detect_amount_outliers(records: Sequence[ExpenseRecord]) -> list[Anomaly]:
    by_category: dict[str, list[ExpenseRecord]] = defaultdict(list)
    for record in records:
        by_category[record.category or FALLBACK_CATEGORY].append(record)

    anomalies: list[Anomaly] = []
    for category, rows in by_category.items():
        if len(rows) < 3:
            continue
        threshold = iqr_threshold([row.amount for row in rows])
        for row in rows:
            if row.amount > threshold:
                anomalies.append(
                    Anomaly(
                        type="high_amount",
                        category=category,
                        amount=row.amount,
                        description=row.description,
                        date=row.date,
                        threshold=threshold,
                        severity=_severity(row.amount, threshold),
                        transaction_id=row.id,
                    )
                )
    return anomalies


def detect_daily_outliers(records: Sequence[ExpenseRecord]) -> list[Anomaly]:
    daily: dict[date, int] = {}
    for record in records:
        daily[record.date] = daily.get(record.date, 0) + record.amount_cents
    if not daily:
        return []

    average = sum(daily.values()) / len(daily) / 100
    threshold = average * 3
    anomalies: list[Anomaly] = []
    for day, total_cents in daily.items():
        amount = total_cents / 100
        if amount > threshold:
            anomalies.append(
                Anomaly(
                    type="high_daily_spending",
                    amount=amount,
                    date=day,
                    threshold=threshold,
                    severity=_severity(amount, threshold),
                )
            )
    return anomalies


def detect_anomalies(records: Sequence[ExpenseRecord]) -> list[Anomaly]:
    anomalies = detect_amount_outliers(records) + detect_daily_outliers(records)
    return sorted(anomalies, key=lambda a: a.date, reverse=True)


# Suggestions


def build_suggestions(
    predictions: dict[str, Prediction], *, currency: str = "USD"
) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    for category, prediction in predictions.items():
        if (
            prediction.trend == "increasing"
            and prediction.predicted > prediction.average * REDUCE_SPENDING_RATIO
        ):
            savings = prediction.predicted - prediction.average
            suggestions.append(
                Suggestion(
                    type="reduce_spending",
                    category=category,
                    message=(
                        f"Consider reducing {category} spending. "
                        f"You could save {savings:.2f} {currency} next month."
                    ),
                    potential_savings=savings,
                    priority="high" if savings > 100 else "medium",
                )
            )

    total_predicted = sum(p.predicted for p in predictions.values())
    total_average = sum(p.average for p in predictions.values())
    if total_predicted > total_average * BUDGET_REVIEW_RATIO:
        suggestions.append(
            Suggestion(
                type="budget_review",
                message="Your spending is trending upward. Consider reviewing your budget.",
                priority="medium",
            )
        )

    return sorted(suggestions, key=lambda s: PRIORITY_RANK[s.priority], reverse=True)


# Month-over-month


def spending_above_usual(
    monthly_totals: Iterable[tuple[str, int, int, float]],
    current: tuple[int, int],
    *,
    lookback: int = 3,
) -> list[SpendingInsight]:
    """Flag categories where this month runs above the recent monthly average.

    ``monthly_totals`` yields ``(category, year, month, total)`` rows. The average
    uses up to ``lookback`` most recent months other than ``current`` that have
    spending.
    """
    by_category: dict[str, dict[tuple[int, int], float]] = defaultdict(dict)
    for category, year, month, total in monthly_totals:
        by_category[category][(year, month)] = total

    insights: list[SpendingInsight] = []
    for category, months in by_category.items():
        previous = [months[key] for key in sorted(months) if key != current][
            -lookback:
        ]
        average = sum(previous) / len(previous) if previous else 0.0
        spent = months.get(current, 0.0)
        if average > 0 and spent > average * ABOVE_USUAL_RATIO:
            percent = round((spent - average) / average * 100)
            insights.append(
                SpendingInsight(
                    category=category,
                    message=f"You are spending {percent}% above your usual on {category}.",
                    current=spent,
                    average=average,
                )
            )
    return insights
