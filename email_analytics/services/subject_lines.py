"""
Subject line analysis.

Groups the campaigns of a window by features of their subject line and
scores each group on one metric against the window baseline:

    length bins        0-30, 31-50, 51-70, 71+ characters
    keywords/emoji     curated offer tokens and emoji presence
    punctuation        ?, !, ALL CAPS words, numbers, %, brackets
    deadlines          urgency words (today, ends, last chance, ...)
    personalization    "you/your" and first-name merge tags
    price anchoring    currency symbols, prices, % discounts
    imperative start   subjects opening with a verb (Shop, Save, Get, ...)
    reuse              subjects sent verbatim more than once

Metrics are ratio-of-sums over the group (opens / sends, not the mean of
per-campaign rates). Rates are in percent and revenuePerEmail in currency,
so ``liftVsBaseline`` is in points or currency accordingly. Groups with no
campaigns are dropped; the rest are ordered by lift, then by emails sent.

A campaign without a subject is analyzed on its campaign name.

Usage:
    from email_analytics.services.subject_lines import analyze_subject_lines

    result = analyze_subject_lines(ctx.get_campaigns(), start, end, SubjectMetricKey.OPEN_RATE)
"""

import logging
import re
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import SubjectMetricKey
from email_analytics.models.schemas import (
    ResolvedDateRange,
    SendRecord,
    SubjectAnalysisResult,
    SubjectFeatureStat,
    SubjectLengthBin,
    SubjectMetricAggregate,
    SubjectReuseStat,
)
from email_analytics.services.bucketing import filter_in_range

logger = logging.getLogger(__name__)


# =============================================================================
# Lexicons
# =============================================================================

DEADLINE_WORDS: List[str] = [
    "today", "tonight", "now", "ends", "expires", "last chance", "final",
    "hours", "left", "midnight", "24 hours", "ending", "deadline",
]

IMPERATIVE_VERBS: List[str] = [
    "shop", "save", "get", "discover", "buy", "grab", "claim", "enjoy",
    "see", "explore", "find", "unlock", "upgrade", "try",
]

KEYWORD_TOKENS: List[str] = [
    "sale", "deal", "offer", "discount", "% off", "off", "free", "save", "new",
    "bestseller", "best seller", "just in", "limited", "exclusive",
]

# (key, label, min length, max length)
LENGTH_BINS: List[Tuple[str, str, int, Optional[int]]] = [
    ("0-30", "0–30", 0, 30),
    ("31-50", "31–50", 31, 50),
    ("51-70", "51–70", 51, 70),
    ("71+", "71+", 71, None),
]

EMOJI_RE = re.compile(
    "[\U0001F000-\U0001FAFF\u2300-\u23FF\u2600-\u27BF\u2B00-\u2BFF\u3030\u303D\u3297\u3299]"
)
ALL_CAPS_RE = re.compile(r"\b[A-Z]{2,}\b")
CAPS_CODE_RE = re.compile(r"[A-Z]{2,}\d+")
PRICE_RE = re.compile(r"[$£€]\s?\d|\d+(?:\.\d{2})?")
YOU_RE = re.compile(r"\b(you|your|you’re|you're)\b")
FIRST_NAME_RE = re.compile(
    r"\{\s*first\s*name\s*\}|\{\s*first[_\s-]?name\s*\}|%first_name%|\*\|first_name\|\*",
    re.IGNORECASE,
)
BRACKETS_RE = re.compile(r"[\[\](){}]")


# =============================================================================
# Subject Predicates
# =============================================================================


def subject_text(record: SendRecord) -> str:
    return (record.subject or record.campaignName or "").strip()


def includes_word(subject: str, token: str) -> bool:
    """
    Whole-word match; tokens containing a space match as plain substrings.

    Example:
        >>> includes_word("Flash SALE ends soon", "sale")
        True
        >>> includes_word("Wholesale pricing", "sale")
        False
    """
    haystack = subject.lower()
    needle = token.lower()
    if " " in needle:
        return needle in haystack
    return re.search(rf"(^|[^a-z]){re.escape(needle)}([^a-z]|$)", haystack) is not None


def has_emoji(subject: str) -> bool:
    return EMOJI_RE.search(subject) is not None


def has_all_caps_word(subject: str) -> bool:
    # Codes such as SAVE20 are not shouting
    return ALL_CAPS_RE.search(CAPS_CODE_RE.sub("X", subject)) is not None


def has_number(subject: str) -> bool:
    return any(ch.isdigit() for ch in subject)


def has_percent(subject: str) -> bool:
    return "%" in subject


def has_currency(subject: str) -> bool:
    return any(symbol in subject for symbol in "$£€")


def has_price(subject: str) -> bool:
    return PRICE_RE.search(subject) is not None


def has_you(subject: str) -> bool:
    return YOU_RE.search(subject.lower()) is not None


def has_first_name_token(subject: str) -> bool:
    return FIRST_NAME_RE.search(subject) is not None


def starts_with_imperative(subject: str) -> bool:
    words = re.sub(r"^\W+", "", subject.strip()).split()
    return bool(words) and words[0].lower() in IMPERATIVE_VERBS


# =============================================================================
# Aggregation
# =============================================================================


def _metric_parts(record: SendRecord, metric: SubjectMetricKey) -> Tuple[float, float]:
    if metric == SubjectMetricKey.OPEN_RATE:
        return record.uniqueOpens, record.emailsSent
    if metric == SubjectMetricKey.CLICK_RATE:
        return record.uniqueClicks, record.emailsSent
    if metric == SubjectMetricKey.CLICK_TO_OPEN_RATE:
        return record.uniqueClicks, record.uniqueOpens
    return record.revenue, record.emailsSent


def compute_subject_aggregate(
    campaigns: Sequence[SendRecord],
    metric: SubjectMetricKey,
) -> SubjectMetricAggregate:
    """Totals and the ratio-of-sums metric value for a group of campaigns."""
    numerator = 0.0
    denominator = 0.0
    for c in campaigns:
        num, den = _metric_parts(c, metric)
        numerator += num
        denominator += den
    scale = 1 if metric == SubjectMetricKey.REVENUE_PER_EMAIL else 100
    return SubjectMetricAggregate(
        countCampaigns=len(campaigns),
        totalEmails=sum(c.emailsSent for c in campaigns),
        totalOpens=sum(c.uniqueOpens for c in campaigns),
        totalClicks=sum(c.uniqueClicks for c in campaigns),
        totalRevenue=sum(c.revenue for c in campaigns),
        value=numerator / denominator * scale if denominator > 0 else 0.0,
    )


def _examples(campaigns: Sequence[SendRecord], limit: int) -> List[str]:
    ordered = sorted(campaigns, key=lambda c: -c.emailsSent)
    return [s for s in (subject_text(c) for c in ordered) if s][:limit]


def _feature(
    campaigns: Sequence[SendRecord],
    metric: SubjectMetricKey,
    baseline: SubjectMetricAggregate,
    key: str,
    label: str,
    predicate: Callable[[str], bool],
    settings: Settings,
) -> SubjectFeatureStat:
    subset = [c for c in campaigns if predicate(subject_text(c))]
    agg = compute_subject_aggregate(subset, metric)
    return SubjectFeatureStat(
        **agg.model_dump(),
        key=key,
        label=label,
        liftVsBaseline=agg.value - baseline.value,
        examples=_examples(subset, settings.subject_example_limit),
    )


def _ranked(features: List[SubjectFeatureStat]) -> List[SubjectFeatureStat]:
    present = [f for f in features if f.countCampaigns > 0]
    return sorted(present, key=lambda f: (-f.liftVsBaseline, -f.totalEmails))


def length_bin_for(length: int) -> Tuple[str, str, int, Optional[int]]:
    for key, label, low, high in LENGTH_BINS:
        if high is None or length <= high:
            return key, label, low, high
    return LENGTH_BINS[-1]


def _length_bins(
    campaigns: Sequence[SendRecord],
    metric: SubjectMetricKey,
    baseline: SubjectMetricAggregate,
    settings: Settings,
) -> List[SubjectLengthBin]:
    groups: Dict[str, List[SendRecord]] = {}
    for c in campaigns:
        key = length_bin_for(len(subject_text(c)))[0]
        groups.setdefault(key, []).append(c)

    bins = []
    for key, label, low, high in LENGTH_BINS:
        members = groups.get(key)
        if not members:
            continue
        agg = compute_subject_aggregate(members, metric)
        bins.append(SubjectLengthBin(
            **agg.model_dump(),
            key=key,
            label=label,
            rangeMin=low,
            rangeMax=high,
            liftVsBaseline=agg.value - baseline.value,
            examples=_examples(members, settings.subject_example_limit),
        ))
    return bins


def _reuse(campaigns: Sequence[SendRecord], metric: SubjectMetricKey) -> List[SubjectReuseStat]:
    by_subject: Dict[str, List[SendRecord]] = {}
    for c in campaigns:
        subject = subject_text(c)
        if subject:
            by_subject.setdefault(subject, []).append(c)

    reuse = []
    for subject, sends in by_subject.items():
        if len(sends) < 2:
            continue
        ordered = sorted(sends, key=lambda c: c.sentDate)
        first = compute_subject_aggregate(ordered[:1], metric).value
        last = compute_subject_aggregate(ordered[-1:], metric).value
        reuse.append(SubjectReuseStat(
            subject=subject,
            occurrences=len(ordered),
            firstValue=first,
            lastValue=last,
            change=last - first,
            totalEmails=sum(c.emailsSent for c in ordered),
        ))
    return sorted(reuse, key=lambda r: -r.totalEmails)


# =============================================================================
# Analysis
# =============================================================================


def compute_subject_analysis(
    campaigns: Sequence[SendRecord],
    metric: SubjectMetricKey = SubjectMetricKey.OPEN_RATE,
    settings: Optional[Settings] = None,
) -> SubjectAnalysisResult:
    """
    Feature groups for an already-filtered list of campaigns.

    ``sufficientData`` is set once the campaigns reach both
    ``subject_min_campaigns`` and ``subject_min_emails``; the groups are
    computed either way.
    """
    settings = settings or get_settings()
    baseline = compute_subject_aggregate(campaigns, metric)

    def feature(key: str, label: str, predicate: Callable[[str], bool]) -> SubjectFeatureStat:
        return _feature(campaigns, metric, baseline, key, label, predicate, settings)

    keyword_emojis = [feature("emoji", "Emoji present", has_emoji)] + [
        feature(f"kw:{token}", token, lambda s, t=token: includes_word(s, t))
        for token in KEYWORD_TOKENS
    ]
    punctuation_casing = [
        feature("qmark", "Has question mark (?)", lambda s: "?" in s),
        feature("exclaim", "Has exclamation (!)", lambda s: "!" in s),
        feature("allcaps", "Has ALL CAPS word", has_all_caps_word),
        feature("number", "Has number", has_number),
        feature("percent", "Has %", has_percent),
        feature("brackets", "Has brackets/parentheses", lambda s: BRACKETS_RE.search(s) is not None),
    ]
    deadlines = [
        feature(f"deadline:{word}", word, lambda s, w=word: includes_word(s, w))
        for word in DEADLINE_WORDS
    ]
    personalization = [
        feature("p:you", "Contains “you/your”", has_you),
        feature("p:first", "Has first-name token", has_first_name_token),
    ]
    price_anchoring = [
        feature("cur", "Has currency ($/£/€)", has_currency),
        feature("price", "Has numeric price", has_price),
        feature("pct", "Has % discount", has_percent),
    ]

    sufficient = (
        len(campaigns) >= settings.subject_min_campaigns
        and baseline.totalEmails >= settings.subject_min_emails
    )

    return SubjectAnalysisResult(
        metric=metric,
        sufficientData=sufficient,
        baseline=baseline,
        lengthBins=_length_bins(campaigns, metric, baseline, settings),
        keywordEmojis=_ranked(keyword_emojis),
        punctuationCasing=_ranked(punctuation_casing),
        deadlines=_ranked(deadlines),
        personalization=_ranked(personalization),
        priceAnchoring=_ranked(price_anchoring),
        # Always reported, even when no subject opens with a verb
        imperativeStart=[feature("imperative", "Starts with a verb (Shop/Save/Get…)", starts_with_imperative)],
        reuse=_reuse(campaigns, metric),
    )


def analyze_subject_lines(
    campaigns: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    metric: SubjectMetricKey = SubjectMetricKey.OPEN_RATE,
    window: Optional[ResolvedDateRange] = None,
    settings: Optional[Settings] = None,
) -> SubjectAnalysisResult:
    """
    Subject line analysis of the campaigns sent between ``start`` and ``end``.

    Args:
        campaigns: Campaign records; flow emails are not analyzed.
        start: Inclusive window start.
        end: Inclusive window end.
        metric: Metric every group is scored on.
        window: Window echoed on the result.
        settings: Data sufficiency and example count overrides.

    Returns:
        SubjectAnalysisResult; an empty window gives zero baselines and no
        groups except the imperative-start row.
    """
    settings = settings or get_settings()
    in_range = filter_in_range(campaigns, start, end)
    result = compute_subject_analysis(in_range, metric, settings)
    logger.debug(
        f"Subject analysis: {len(in_range)} campaigns, metric={metric.value}, "
        f"sufficient={result.sufficientData}"
    )
    return result.model_copy(update={"dateRange": window})
