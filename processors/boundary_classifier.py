"""
Pairwise boundary classification.

Decides, for two adjacent glyph runs of one line, whether the boundary is a
join (no separator), a word space, or a line break. The decision is an
ordered cascade of pure rule functions. Each rule looks at the pair and
either returns nothing, moves the running word-break threshold (raise_to /
lower_to), or settles the decision outright. Later rules override earlier
ones, so the order of RULES is the precedence order.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from models.layout_types import BoundaryDecision, BoundaryDecisionType, GlyphRun, LineGeometryModel
from processors.line_model import LineModelOptions, estimate_pair_char_width
from utils.font_metrics import FontMetricsResolver
from utils.stats import clamp, clamp01

logger = logging.getLogger(__name__)


DEFAULT_PROFILE = "auto-default"
SHORT_CIRCUIT_CONFIDENCE = 0.95
OVERLAP_CONFIDENCE = 0.9
LINE_BREAK_CONFIDENCE = 0.9
MIN_CHAR_WIDTH = 0.01


@dataclass
class BoundaryRuleOptions:
    """Thresholds for the pairwise boundary rule cascade, in gap-by-char units"""
    overlap_tolerance_em: float = 0.25  # Negative gaps within this are treated as touching
    default_threshold: float = 0.85  # Used when no line model is supplied
    url_break_min: float = 0.65
    url_break_max: float = 0.95
    email_threshold: float = 2.2
    single_alnum_threshold: float = 2.2
    multi_char_threshold: float = 0.15
    short_alpha_threshold: float = 1.85
    separator_threshold: float = 0.28
    case_boundary_threshold: float = 0.08
    connector_threshold: float = 0.18
    connector_words: Tuple[str, ...] = ("to", "of", "in", "on", "at", "by", "or", "an", "as", "if", "is")
    break_line_gap_em: float = 4.0  # Raw gap above this many ems is a column gutter
    same_line_center_ratio: float = 0.6  # Centre offset above ratio * smaller height leaves the line
    punctuation_attach_max: float = 0.95  # Punctuation attaches when gapByChar is at most this

    def validate(self) -> bool:
        if self.overlap_tolerance_em < 0:
            logger.error("overlap_tolerance_em must be non-negative")
            return False
        if self.url_break_min > self.url_break_max:
            logger.error("url_break_min must not exceed url_break_max")
            return False
        if self.break_line_gap_em <= 0:
            logger.error("break_line_gap_em must be positive")
            return False
        return True


@dataclass(frozen=True)
class CalibrationProfile:
    """
    Script-level calibration applied on top of the per-line model.

    The word-break threshold from the line model is multiplied by
    `threshold_scale` (clamped to [0.25, 3]); digit-to-digit boundaries never
    go below `digit_threshold_min`; `join_cjk` glues adjacent CJK runs
    regardless of geometry.
    """
    name: str
    script: str = "latin"
    threshold_scale: float = 1.0
    digit_threshold_min: float = 1.35
    join_cjk: bool = False


CALIBRATION_PROFILES: Dict[str, CalibrationProfile] = {
    p.name: p for p in (
        CalibrationProfile("auto-default", script="auto"),
        CalibrationProfile("latin-default", script="latin"),
        CalibrationProfile("latin-tight", script="latin", threshold_scale=1.1, digit_threshold_min=1.45),
        CalibrationProfile("latin-loose", script="latin", threshold_scale=0.9, digit_threshold_min=1.15),
        CalibrationProfile("cyrillic-default", script="cyrillic", threshold_scale=1.05),
        CalibrationProfile("greek-default", script="greek", threshold_scale=1.05),
        CalibrationProfile("arabic-default", script="arabic", threshold_scale=1.15),
        CalibrationProfile("hebrew-default", script="hebrew", threshold_scale=1.1),
        CalibrationProfile("devanagari-default", script="devanagari", threshold_scale=1.1),
        CalibrationProfile("cjk-default", script="cjk", threshold_scale=2.0, join_cjk=True),
    )
}


def get_calibration_profile(name: Optional[str] = None) -> CalibrationProfile:
    """Look up a profile by name, falling back to auto-default for unknown names"""
    key = (name or "").strip() or DEFAULT_PROFILE
    profile = CALIBRATION_PROFILES.get(key)
    if profile is None:
        logger.warning(f"Unknown calibration profile '{key}', using {DEFAULT_PROFILE}")
        profile = CALIBRATION_PROFILES[DEFAULT_PROFILE]
    return profile


# Script detection
SCRIPT_RANGES: Tuple[Tuple[str, Tuple[Tuple[int, int], ...]], ...] = (
    ("latin", ((0x0041, 0x007A), (0x00C0, 0x024F))),
    ("greek", ((0x0370, 0x03FF),)),
    ("cyrillic", ((0x0400, 0x052F),)),
    ("hebrew", ((0x0590, 0x05FF), (0xFB1D, 0xFB4F))),
    ("arabic", ((0x0600, 0x06FF), (0x0750, 0x077F), (0x08A0, 0x08FF), (0xFB50, 0xFDFF), (0xFE70, 0xFEFF))),
    ("devanagari", ((0x0900, 0x097F),)),
    ("cjk", ((0x4E00, 0x9FFF), (0x3400, 0x4DBF), (0x3040, 0x30FF), (0x31F0, 0x31FF), (0xAC00, 0xD7AF))),
)


def classify_code_point(cp: int) -> str:
    for script, ranges in SCRIPT_RANGES:
        if any(low <= cp <= high for low, high in ranges):
            return script
    return "other"


def resolve_script(items: Iterable[GlyphRun], fallback: str = "latin") -> str:
    """Dominant script of a set of runs by code-point count"""
    counts: Dict[str, int] = {}
    for item in items:
        for ch in item.text:
            script = classify_code_point(ord(ch))
            if script != "other":
                counts[script] = counts.get(script, 0) + 1
    if not counts:
        return fallback
    return max(counts.items(), key=lambda kv: kv[1])[0]


def is_cjk_text(text: str) -> bool:
    return any(classify_code_point(ord(ch)) == "cjk" for ch in text)


# Token patterns
_URL_MARKER = re.compile(r'(https?://|www\.)')
_URL_START = re.compile(r'^(https?://|https?:|www\.)', re.IGNORECASE)
_ENDS_WITH_TLD = re.compile(r'\.[A-Za-z]{2,4}$')
_HOST_LABEL = re.compile(r'^[A-Za-z0-9-]{2,}$')
_SHORT_ALPHA_TOKEN = re.compile(r'^[A-Za-z]{2,4}$')
_EMAIL_TOKEN = re.compile(r'^[A-Za-z0-9._%+-]+$')
_TLD_TOKEN = re.compile(r'^[A-Za-z]{2,6}$')
_SINGLE_ALNUM = re.compile(r'^[A-Za-z0-9]$')
_SHORT_ALPHA = re.compile(r'^[A-Za-z]{1,3}$')
_CLOSING_PUNCT_START = re.compile(r'^[,.;:!?)]')


def is_in_url_context(prev_text: str, next_text: str) -> bool:
    prev, nxt = prev_text.lower(), next_text.lower()
    if _URL_MARKER.search(prev) or _URL_MARKER.search(nxt):
        return True
    if '://' in prev or '://' in nxt:
        return True
    if '/' in prev or nxt.startswith('/'):
        return True
    if prev_text.endswith('.') and _HOST_LABEL.match(next_text):
        return True
    if _ENDS_WITH_TLD.search(prev_text):
        return True
    return bool(_SHORT_ALPHA_TOKEN.match(next_text) and prev_text.endswith('.') and len(prev_text) >= 4)


def is_url_start(text: str) -> bool:
    return bool(_URL_START.match(text))


def is_emailish(prev_text: str, next_text: str) -> bool:
    if not prev_text or not next_text:
        return False
    if '@' in prev_text or '@' in next_text:
        return True
    if prev_text.endswith('.') and _TLD_TOKEN.match(next_text):
        return True
    return bool(
        _EMAIL_TOKEN.match(prev_text) and _EMAIL_TOKEN.match(next_text)
        and ('.' in prev_text or '.' in next_text)
    )


def _alpha_boundary(ctx: 'PairContext') -> bool:
    return ctx.prev_text[-1:].isascii() and ctx.prev_text[-1:].isalpha() \
        and ctx.next_text[:1].isascii() and ctx.next_text[:1].isalpha()


@dataclass(frozen=True)
class PairContext:
    """Everything a rule may look at for one adjacent pair"""
    prev_text: str
    next_text: str
    gap_px: float
    gap_by_char: float
    base_threshold: float
    profile: CalibrationProfile
    script: str
    options: BoundaryRuleOptions = field(default_factory=BoundaryRuleOptions)


@dataclass(frozen=True)
class ThresholdAdjustment:
    """What a rule does to the running threshold, or the decision it settles"""
    raise_to: Optional[float] = None
    lower_to: Optional[float] = None
    decision: Optional[BoundaryDecisionType] = None
    confidence: Optional[float] = None
    threshold: Optional[float] = None  # Reported threshold for a settled decision

    @classmethod
    def join(cls, confidence: float = SHORT_CIRCUIT_CONFIDENCE) -> 'ThresholdAdjustment':
        return cls(decision=BoundaryDecisionType.JOIN, confidence=confidence)

    def apply(self, threshold: float) -> float:
        if self.raise_to is not None:
            threshold = max(threshold, self.raise_to)
        if self.lower_to is not None:
            threshold = min(threshold, self.lower_to)
        return threshold


Rule = Callable[[PairContext], Optional[ThresholdAdjustment]]


def rule_overlap(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    """Glyphs overlapping beyond the tolerance cannot be separated by a space"""
    if ctx.gap_px < 0:
        return ThresholdAdjustment.join(OVERLAP_CONFIDENCE)
    return None


def rule_url(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    if not is_in_url_context(ctx.prev_text, ctx.next_text):
        return None
    if is_url_start(ctx.next_text) and re.search(r'[A-Za-z0-9)]$', ctx.prev_text):
        needed = clamp(ctx.base_threshold, ctx.options.url_break_min, ctx.options.url_break_max)
        decision = BoundaryDecisionType.SPACE if ctx.gap_by_char >= needed else BoundaryDecisionType.JOIN
        confidence = clamp01(0.55 + min(1.5, abs(ctx.gap_by_char - needed)) / 1.5)
        return ThresholdAdjustment(decision=decision, confidence=confidence, threshold=needed)
    return ThresholdAdjustment.join()


def rule_closing_punctuation(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    if _CLOSING_PUNCT_START.match(ctx.next_text):
        return ThresholdAdjustment.join()
    return None


def rule_time_like(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    """'12:' followed by '30' stays one token"""
    if re.search(r'\d:$', ctx.prev_text) and ctx.next_text[:1].isdigit():
        return ThresholdAdjustment.join()
    return None


def rule_cjk_join(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    if ctx.profile.join_cjk and ctx.script == "cjk" and is_cjk_text(ctx.prev_text) and is_cjk_text(ctx.next_text):
        return ThresholdAdjustment.join()
    return None


def rule_digit_sequence(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    if ctx.prev_text[-1:].isdigit() and ctx.next_text[:1].isdigit():
        return ThresholdAdjustment(raise_to=ctx.profile.digit_threshold_min)
    return None


def rule_email(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    if is_emailish(ctx.prev_text, ctx.next_text):
        return ThresholdAdjustment(raise_to=ctx.options.email_threshold)
    return None


def rule_single_alnum(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    if _SINGLE_ALNUM.match(ctx.prev_text) and _SINGLE_ALNUM.match(ctx.next_text):
        return ThresholdAdjustment(raise_to=ctx.options.single_alnum_threshold)
    return None


def _is_multi_char_alpha(ctx: PairContext) -> bool:
    return len(ctx.prev_text) >= 3 and len(ctx.next_text) >= 3 and _alpha_boundary(ctx)


def rule_multi_char_words(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    """Two words of 3+ chars apart by even a small gap are separate words"""
    if _is_multi_char_alpha(ctx):
        return ThresholdAdjustment(lower_to=ctx.options.multi_char_threshold)
    return None


def rule_short_alpha(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    if _is_multi_char_alpha(ctx):
        return None
    if _SHORT_ALPHA.match(ctx.prev_text) and _SHORT_ALPHA.match(ctx.next_text) and _alpha_boundary(ctx):
        return ThresholdAdjustment(raise_to=ctx.options.short_alpha_threshold)
    return None


def rule_separator(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    if ctx.prev_text[-1:] in (':', ';', ',') and ctx.next_text[:1].isascii() and ctx.next_text[:1].isalnum():
        if ctx.prev_text.endswith(':') and ctx.next_text[:1].isdigit():
            return None
        return ThresholdAdjustment(lower_to=ctx.options.separator_threshold)
    return None


def rule_case_boundary(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    """'Gate' + 'Boarding': lower-to-upper is a strong missing-space signal"""
    prev_last, next_first = ctx.prev_text[-1:], ctx.next_text[:1]
    if ('a' <= prev_last <= 'z') and ('A' <= next_first <= 'Z') \
            and len(ctx.prev_text) >= 2 and len(ctx.next_text) >= 2:
        return ThresholdAdjustment(lower_to=ctx.options.case_boundary_threshold)
    return None


def rule_connector_word(ctx: PairContext) -> Optional[ThresholdAdjustment]:
    if not _alpha_boundary(ctx):
        return None
    connectors = ctx.options.connector_words
    if ctx.next_text.lower() in connectors or ctx.prev_text.lower() in connectors:
        return ThresholdAdjustment(lower_to=ctx.options.connector_threshold)
    return None


RULES: Tuple[Rule, ...] = (
    rule_overlap,
    rule_url,
    rule_closing_punctuation,
    rule_time_like,
    rule_cjk_join,
    rule_digit_sequence,
    rule_email,
    rule_single_alnum,
    rule_multi_char_words,
    rule_short_alpha,
    rule_separator,
    rule_case_boundary,
    rule_connector_word,
)


def rule_name(rule: Rule) -> str:
    return rule.__name__.replace('rule_', '', 1)


def fold_rules(ctx: PairContext, rules: Sequence[Rule] = RULES) -> BoundaryDecision:
    """
    Run the cascade for one pair.

    Returns the settled decision of the first short-circuiting rule, or the
    comparison of gap_by_char against the folded threshold.
    """
    threshold = ctx.base_threshold
    deciding_rule: Optional[str] = None

    for rule in rules:
        adjustment = rule(ctx)
        if adjustment is None:
            continue
        if adjustment.decision is not None:
            return BoundaryDecision(
                type=adjustment.decision,
                confidence=adjustment.confidence if adjustment.confidence is not None else SHORT_CIRCUIT_CONFIDENCE,
                gapPx=ctx.gap_px,
                gapByChar=0.0 if ctx.gap_px < 0 else ctx.gap_by_char,
                thresholdByChar=adjustment.threshold if adjustment.threshold is not None else threshold,
                rule=rule_name(rule),
            )
        adjusted = adjustment.apply(threshold)
        if adjusted != threshold:
            deciding_rule = rule_name(rule)
        threshold = adjusted

    is_space = ctx.gap_by_char >= threshold
    margin = min(1.5, abs(ctx.gap_by_char - threshold))
    return BoundaryDecision(
        type=BoundaryDecisionType.SPACE if is_space else BoundaryDecisionType.JOIN,
        confidence=clamp01(0.55 + margin / 1.5),
        gapPx=ctx.gap_px,
        gapByChar=ctx.gap_by_char,
        thresholdByChar=threshold,
        rule=deciding_rule or "threshold",
    )


class BoundaryClassifier:
    """
    Decides join / space / line break between adjacent glyph runs.

    Holds only configuration (resolver, profile, options); every call is a
    pure function of its arguments, so one instance can serve a whole page.
    """

    def __init__(
        self,
        resolver: Optional[FontMetricsResolver] = None,
        profile: Optional[CalibrationProfile] = None,
        options: Optional[BoundaryRuleOptions] = None,
        line_model_options: Optional[LineModelOptions] = None,
        rules: Sequence[Rule] = RULES,
    ):
        self.resolver = resolver or FontMetricsResolver()
        self.profile = profile or get_calibration_profile(DEFAULT_PROFILE)
        self.options = options or BoundaryRuleOptions()
        self.line_model_options = line_model_options or LineModelOptions()
        self.rules = tuple(rules)

    def resolve_script_for(self, items: Iterable[GlyphRun]) -> str:
        if self.profile.script != "auto":
            return self.profile.script
        return resolve_script(items)

    def build_context(
        self,
        prev: GlyphRun,
        next_run: GlyphRun,
        model: Optional[LineGeometryModel] = None,
        script: Optional[str] = None,
    ) -> PairContext:
        raw_gap = next_run.x - prev.right
        avg_font_size = max(1.0, (prev.fontSize + next_run.fontSize) / 2)
        tolerance = avg_font_size * self.options.overlap_tolerance_em
        gap_px = 0.0 if -tolerance <= raw_gap < 0 else raw_gap

        if model is not None:
            char_width = model.estimatedCharWidth
            base = model.wordBreakThresholdByChar
        else:
            char_width = estimate_pair_char_width(prev, next_run, self.resolver, self.line_model_options)
            base = self.options.default_threshold
        base *= clamp(self.profile.threshold_scale, 0.25, 3.0)

        return PairContext(
            prev_text=prev.text.strip(),
            next_text=next_run.text.strip(),
            gap_px=gap_px,
            gap_by_char=max(0.0, gap_px) / max(MIN_CHAR_WIDTH, char_width),
            base_threshold=base,
            profile=self.profile,
            script=script or self.resolve_script_for((prev, next_run)),
            options=self.options,
        )

    def should_insert_space(
        self,
        prev: GlyphRun,
        next_run: GlyphRun,
        model: Optional[LineGeometryModel] = None,
        script: Optional[str] = None,
    ) -> bool:
        """Binary word-space decision used when merging runs"""
        ctx = self.build_context(prev, next_run, model, script)
        return fold_rules(ctx, self.rules).type == BoundaryDecisionType.SPACE

    def leaves_line(self, prev: GlyphRun, next_run: GlyphRun) -> bool:
        """True when the pair does not share a line or is split by a column gutter"""
        smaller_height = max(1.0, min(prev.height, next_run.height))
        if abs(prev.center_y - next_run.center_y) > smaller_height * self.options.same_line_center_ratio:
            return True
        avg_font_size = max(1.0, (prev.fontSize + next_run.fontSize) / 2)
        return next_run.x - prev.right > avg_font_size * self.options.break_line_gap_em

    def classify(
        self,
        prev: GlyphRun,
        next_run: GlyphRun,
        model: Optional[LineGeometryModel] = None,
        script: Optional[str] = None,
    ) -> BoundaryDecision:
        """Full decision with gap metrics, confidence and the deciding rule"""
        ctx = self.build_context(prev, next_run, model, script)
        if self.leaves_line(prev, next_run):
            return BoundaryDecision(
                type=BoundaryDecisionType.BREAK_LINE,
                confidence=LINE_BREAK_CONFIDENCE,
                gapPx=ctx.gap_px,
                gapByChar=ctx.gap_by_char,
                thresholdByChar=ctx.base_threshold,
                rule="break_line",
            )
        return fold_rules(ctx, self.rules)

    def classify_line(
        self,
        items: Sequence[GlyphRun],
        model: Optional[LineGeometryModel] = None,
    ) -> List[BoundaryDecision]:
        """Decisions for every adjacent pair of x-ordered runs"""
        ordered = sorted(items, key=lambda r: r.x)
        script = self.resolve_script_for(ordered)
        return [self.classify(a, b, model, script) for a, b in zip(ordered, ordered[1:])]
