"""
============================================================================
Paper Sandbox v1.0.0
Strategy Parser - Natural Language to Rule Set
============================================================================

Reliability Level: L6 Critical
Input Constraints: Free-text description plus optional context
Side Effects: RuleBasedStrategyParser none; LLMStrategyParser HTTP call

PARSING CONTRACT:
parse(description, context) -> ParsedStrategy
- Never fails: always returns a validated strategy with at least one rule
- Context platform/symbol/market_id/capital always win over the text;
  context fields that fail validation are dropped and inferred instead
- Nothing actionable in the text yields a single hold rule

RULE EXTRACTION (rule-based, per clause):
- "DCA $N every T <unit>"        -> buy,  time_interval(T * unit ms)
- "below N cents"                -> buy,  price_below(N / 100)
- "above N"                      -> sell, price_above(N)
- "stop loss at -N%", "down N%"  -> sell, loss_percent(N / 100)
- "up N%", "N% profit"           -> sell, profit_percent(N / 100)
- "drops N%" (entry)             -> buy,  price_below(quote * (1 - N/100))
- "rises N%" (entry)             -> buy,  price_above(quote * (1 + N/100))
- bare "buy/long/short"          -> buy at the current quote (0.5% band)

Relative entries are resolved against the instrument quote from the
injected PriceSource at compile time.

LLM PATH:
POST {STRATEGY_LLM_URL}/parse_strategy
Any transport failure, malformed reply or schema violation falls back to
the rule-based parser (SIM-020 logged as a warning).

ERROR CODES:
- SIM-020: LLM parse failed, rule-based fallback used

============================================================================
"""

import re
import json
import logging
from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Optional, Dict, Any, List, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from services.strategy_schema import (
    AmountKeyword,
    Condition,
    ConditionType,
    DEFAULT_CRYPTO_SYMBOL,
    MS_PER_DAY,
    MS_PER_HOUR,
    MS_PER_MINUTE,
    ParsedStrategy,
    Platform,
    Rule,
    RuleSide,
    StrategyAction,
    correct_side,
    validate_strategy_schema,
)
from services.price_source import MockPriceSource, PriceSource
from services.sim_config import PARSER_MODE_LLM, SimConfig
from app.infra.llm_client import LLMClient

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_BUY_AMOUNT = Decimal("100")
DEFAULT_DCA_AMOUNT = Decimal("50")
DEFAULT_CAPITAL = Decimal("500")

# Bare entries fire within this band of the quote seen at compile time
MARKET_ENTRY_BAND = Decimal("0.005")
CRYPTO_PRICE_STEP = Decimal("0.01")
OUTCOME_PRICE_STEP = Decimal("0.0001")

SIM_ERROR_LLM_FALLBACK = "SIM-020"

# Ordered: first match wins
SYMBOL_PATTERNS = [
    (re.compile(r"\b(?:btc|bitcoin)\b"), "BTC/USDT"),
    (re.compile(r"\b(?:eth|ethereum)\b"), "ETH/USDT"),
    (re.compile(r"\b(?:sol|solana)\b"), "SOL/USDT"),
    (re.compile(r"\bbnb\b"), "BNB/USDT"),
    (re.compile(r"\b(?:doge|dogecoin)\b"), "DOGE/USDT"),
    (re.compile(r"\b(?:xrp|ripple)\b"), "XRP/USDT"),
]

CRYPTO_KEYWORDS = re.compile(
    r"\b(?:leverage|leveraged|long|short|crypto|btc|bitcoin|eth|ethereum|sol|solana"
    r"|bnb|doge|dogecoin|xrp|ripple|\d+x)\b"
)

UNIT_MS = {
    "minute": MS_PER_MINUTE,
    "hour": MS_PER_HOUR,
    "day": MS_PER_DAY,
}

_NUMBER = r"(\d+(?:\.\d+)?)"

THOUSANDS_SEP = re.compile(r"(?<=\d),(?=\d{3}\b)")
CLAUSE_SPLIT = re.compile(r"[,;]|\band\b|\bthen\b")
DOLLAR_RE = re.compile(r"\$\s*" + _NUMBER)
DCA_RE = re.compile(r"\bdca\b|\bevery\b")
INTERVAL_RE = re.compile(
    r"(?:" + _NUMBER + r"\s*)?(?<![a-z])(minute|min|hour|hr|day)s?\b"
)
BELOW_RE = re.compile(
    r"\b(?:below|under)\s+\$?" + _NUMBER + r"\s*(cents?|¢|dollars?)?"
)
ABOVE_RE = re.compile(
    r"\b(?:above|over)\s+\$?" + _NUMBER + r"\s*(cents?|¢|dollars?)?"
)
LOSS_RES = [
    re.compile(r"\bstop(?:\s*-?\s*loss)?\s+(?:at\s+|of\s+)?-\s*" + _NUMBER + r"\s*%"),
    re.compile(r"\bstop(?:\s*-?\s*loss)?\s+(?:at\s+|of\s+)?" + _NUMBER + r"\s*%"),
    re.compile(r"\b(?:down|lose|losing)\s+" + _NUMBER + r"\s*%"),
    re.compile(_NUMBER + r"\s*%\s*loss\b"),
    re.compile(r"\bat\s+-\s*" + _NUMBER + r"\s*%"),
]
PROFIT_RES = [
    re.compile(r"\bup\s+" + _NUMBER + r"\s*%"),
    re.compile(_NUMBER + r"\s*%\s*(?:profit|gain)"),
    re.compile(r"\bprofit\s+(?:at|of)\s+" + _NUMBER + r"\s*%"),
]
EXIT_WORDS = re.compile(r"\b(?:sell|take|exit|cover|close)\b")
BARE_PERCENT_RE = re.compile(r"(?<!-)(?<!\d)" + _NUMBER + r"\s*%")
MOVE_DOWN_RE = re.compile(
    r"\b(?:drops?|dips?|falls?|declines?)\s+(?:by\s+)?" + _NUMBER + r"\s*%"
)
MOVE_UP_RE = re.compile(
    r"\b(?:rises?|pumps?|jumps?|climbs?|rallies)\s+(?:by\s+)?" + _NUMBER + r"\s*%"
)
ENTRY_WORDS = re.compile(r"\b(?:buy|long|short|enter)\b")
STOP_WORD = re.compile(r"\bstop\b")

UNIT_ALIASES = {"min": "minute", "hr": "hour"}


# =============================================================================
# Context
# =============================================================================

class StrategyContext(BaseModel):
    """Caller-supplied hints that always override the text."""
    platform: Optional[Platform] = None
    symbol: Optional[str] = None
    market_id: Optional[str] = None
    capital: Optional[Decimal] = Field(default=None, gt=0)

    @field_validator('capital', mode='before')
    @classmethod
    def coerce_capital(cls, v: Any) -> Any:
        if isinstance(v, float):
            return Decimal(str(v))
        return v


def _as_context(context: Union[StrategyContext, Dict[str, Any], None]) -> StrategyContext:
    """
    Normalize caller hints field by field.

    A field that fails validation is dropped so the parser infers it from
    the text (or uses its default) instead of failing the whole parse.
    """
    if context is None:
        return StrategyContext()
    if isinstance(context, StrategyContext):
        return context
    if not isinstance(context, dict):
        logger.warning(
            f"[PARSER-CONTEXT] Ignoring context | type={type(context).__name__}"
        )
        return StrategyContext()

    accepted: Dict[str, Any] = {}
    for name in StrategyContext.model_fields:
        value = context.get(name)
        if value is None:
            continue
        try:
            StrategyContext(**{name: value})
        except ValidationError:
            logger.warning(
                f"[PARSER-CONTEXT] Dropping invalid context field | "
                f"field={name} | value={value!r}"
            )
            continue
        accepted[name] = value
    return StrategyContext(**accepted)


# =============================================================================
# Parser Interface
# =============================================================================

class StrategyParser(ABC):
    """Compiles free text into a ParsedStrategy."""

    @abstractmethod
    def parse(
        self,
        description: str,
        context: Union[StrategyContext, Dict[str, Any], None] = None,
        correlation_id: Optional[str] = None,
    ) -> ParsedStrategy:
        """Compile a description. Implementations never raise."""


# =============================================================================
# Rule-Based Parser
# =============================================================================

class RuleBasedStrategyParser(StrategyParser):
    """
    Deterministic keyword/regex parser.

    The description is split into clauses (commas, semicolons, "and",
    "then") and each clause contributes at most one rule, so
    "buy below 45 cents, sell half at 20% profit, sell all at 35%"
    compiles to three rules in text order.

    Relative entries ("if it drops 5%") and bare entries ("long BTC") are
    turned into absolute thresholds using the price source's current quote.
    """

    def __init__(self, price_source: Optional[PriceSource] = None) -> None:
        self._prices = price_source or MockPriceSource()

    def _reference_quote(
        self,
        platform: Platform,
        symbol: Optional[str],
        market_id: Optional[str],
        side: RuleSide,
    ) -> Optional[Decimal]:
        """Current quote for the instrument, or None if it cannot be priced."""
        try:
            if platform == Platform.CRYPTO:
                quote = self._prices.current_price(
                    Platform.CRYPTO, symbol or DEFAULT_CRYPTO_SYMBOL
                )
            else:
                outcome = "no" if side == RuleSide.NO else "yes"
                quote = self._prices.current_price(
                    Platform.POLYMARKET, market_id or "", outcome
                )
        except Exception as e:
            logger.warning(
                f"[PARSER-RULES] No quote, relative entries skipped | "
                f"platform={platform.value} | error={str(e)[:200]}"
            )
            return None
        if quote is None or quote <= Decimal("0"):
            return None
        return Decimal(quote)

    def parse(
        self,
        description: str,
        context: Union[StrategyContext, Dict[str, Any], None] = None,
        correlation_id: Optional[str] = None,
    ) -> ParsedStrategy:
        ctx = _as_context(context)
        text = THOUSANDS_SEP.sub("", (description or "").lower())

        platform = ctx.platform or detect_platform(text)
        side = detect_side(text, platform)

        symbol = ctx.symbol
        if symbol is None and platform == Platform.CRYPTO:
            symbol = detect_symbol(text)

        quote = self._reference_quote(platform, symbol, ctx.market_id, side)

        rules: List[Rule] = []
        for clause in CLAUSE_SPLIT.split(text):
            clause = clause.strip()
            if not clause:
                continue
            rule = _parse_clause(clause, side, platform, quote)
            if rule is not None:
                rules.append(rule)

        if not rules:
            rules.append(Rule(action=StrategyAction.HOLD))

        capital = ctx.capital
        if capital is None:
            # $ figures that are price thresholds are not capital
            sized = ABOVE_RE.sub(" ", BELOW_RE.sub(" ", text))
            dollars = [_to_decimal(m) for m in DOLLAR_RE.findall(sized)]
            capital = sum(dollars, Decimal("0")) or DEFAULT_CAPITAL

        strategy = validate_strategy_schema({
            "name": generate_strategy_name(rules, platform),
            "description": description or "",
            "platform": platform,
            "symbol": symbol,
            "market_id": ctx.market_id,
            "capital": capital,
            "rules": rules,
        })

        logger.debug(
            f"[PARSER-RULES] Parsed strategy | name={strategy.name} | "
            f"platform={platform.value} | rules={len(strategy.rules)} | "
            f"correlation_id={correlation_id}"
        )
        return strategy


def _to_decimal(raw: str) -> Decimal:
    return Decimal(raw)


def _clause_amount(clause: str, default: Union[Decimal, AmountKeyword]) -> Union[Decimal, AmountKeyword]:
    dollar = DOLLAR_RE.search(clause)
    if dollar:
        amount = _to_decimal(dollar.group(1))
        if amount > Decimal("0"):
            return amount
    if re.search(r"\bhalf\b", clause):
        return AmountKeyword.HALF
    if re.search(r"\ball\b", clause):
        return AmountKeyword.ALL
    return default


def _without(clause: str, match: "re.Match") -> str:
    """Clause text minus a matched price threshold."""
    return clause[:match.start()] + " " + clause[match.end():]


def _price_value(raw: str, unit: Optional[str], side: RuleSide) -> Decimal:
    value = _to_decimal(raw)
    if unit and (unit.startswith("cent") or unit == "¢"):
        return value / Decimal("100")
    # Outcome prices live in [0, 1]; a bare "below 40" on a market means cents
    if unit is None and side in (RuleSide.YES, RuleSide.NO) and value > Decimal("1"):
        return value / Decimal("100")
    return value


def _percent(raw: str) -> Optional[Decimal]:
    value = _to_decimal(raw) / Decimal("100")
    if value > Decimal("1"):
        return None
    return value


def _relative_price(quote: Decimal, factor: Decimal, platform: Platform) -> Decimal:
    step = CRYPTO_PRICE_STEP if platform == Platform.CRYPTO else OUTCOME_PRICE_STEP
    return (quote * factor).quantize(step, rounding=ROUND_HALF_EVEN)


def _entry_rule(clause: str, side: RuleSide, condition_type: ConditionType, value: Decimal) -> Rule:
    return Rule(
        action=StrategyAction.BUY,
        side=side,
        amount=_clause_amount(clause, DEFAULT_BUY_AMOUNT),
        condition=Condition(type=condition_type, value=value),
    )


def _parse_relative_entry(
    clause: str,
    side: RuleSide,
    platform: Platform,
    quote: Optional[Decimal],
) -> Optional[Rule]:
    """Entries phrased as a move: "buy if it drops 5%", "short if it rises 15%"."""
    if quote is None:
        return None

    down = MOVE_DOWN_RE.search(clause)
    if down:
        move = _percent(down.group(1))
        # a 100% drop would put the threshold at zero
        if move is None or not Decimal("0") < move < Decimal("1"):
            return None
        return _entry_rule(
            clause, side, ConditionType.PRICE_BELOW,
            _relative_price(quote, Decimal("1") - move, platform),
        )

    up = MOVE_UP_RE.search(clause)
    if up:
        move = _percent(up.group(1))
        if move is None or move <= Decimal("0"):
            return None
        return _entry_rule(
            clause, side, ConditionType.PRICE_ABOVE,
            _relative_price(quote, Decimal("1") + move, platform),
        )

    return None


def _parse_market_entry(
    clause: str,
    side: RuleSide,
    platform: Platform,
    quote: Optional[Decimal],
) -> Optional[Rule]:
    """Bare "long BTC" / "short SOL" / "buy YES": enter near the current quote."""
    if quote is None or EXIT_WORDS.search(clause) or not ENTRY_WORDS.search(clause):
        return None
    if side == RuleSide.SHORT:
        return _entry_rule(
            clause, side, ConditionType.PRICE_ABOVE,
            _relative_price(quote, Decimal("1") - MARKET_ENTRY_BAND, platform),
        )
    return _entry_rule(
        clause, side, ConditionType.PRICE_BELOW,
        _relative_price(quote, Decimal("1") + MARKET_ENTRY_BAND, platform),
    )


def _parse_clause(
    clause: str,
    side: RuleSide,
    platform: Platform,
    quote: Optional[Decimal],
) -> Optional[Rule]:
    """Extract at most one rule from a single clause."""
    if DCA_RE.search(clause):
        interval = INTERVAL_RE.search(clause)
        if interval or re.search(r"\bdca\b", clause):
            count = Decimal("1")
            unit = "hour"
            if interval:
                if interval.group(1):
                    count = _to_decimal(interval.group(1))
                unit = UNIT_ALIASES.get(interval.group(2), interval.group(2))
            if count > Decimal("0"):
                return Rule(
                    action=StrategyAction.BUY,
                    side=side,
                    amount=_clause_amount(clause, DEFAULT_DCA_AMOUNT),
                    condition=Condition(
                        type=ConditionType.TIME_INTERVAL,
                        value=count * UNIT_MS[unit],
                    ),
                )

    below = BELOW_RE.search(clause)
    if below:
        return Rule(
            action=StrategyAction.BUY,
            side=side,
            amount=_clause_amount(_without(clause, below), DEFAULT_BUY_AMOUNT),
            condition=Condition(
                type=ConditionType.PRICE_BELOW,
                value=_price_value(below.group(1), below.group(2), side),
            ),
        )

    above = ABOVE_RE.search(clause)
    if above:
        return Rule(
            action=StrategyAction.SELL,
            side=side,
            amount=_clause_amount(_without(clause, above), AmountKeyword.ALL),
            condition=Condition(
                type=ConditionType.PRICE_ABOVE,
                value=_price_value(above.group(1), above.group(2), side),
            ),
        )

    # a move without an exit word is an entry, or nothing
    exiting = EXIT_WORDS.search(clause) or STOP_WORD.search(clause)
    if not exiting and (MOVE_DOWN_RE.search(clause) or MOVE_UP_RE.search(clause)):
        return _parse_relative_entry(clause, side, platform, quote)

    for pattern in LOSS_RES:
        match = pattern.search(clause)
        if match:
            value = _percent(match.group(1))
            if value is None:
                return None
            return Rule(
                action=StrategyAction.SELL,
                side=side,
                amount=_clause_amount(clause, AmountKeyword.ALL),
                condition=Condition(type=ConditionType.LOSS_PERCENT, value=value),
            )

    profit_match = None
    for pattern in PROFIT_RES:
        profit_match = pattern.search(clause)
        if profit_match:
            break
    if profit_match is None and EXIT_WORDS.search(clause):
        profit_match = BARE_PERCENT_RE.search(clause)
    if profit_match:
        value = _percent(profit_match.group(1))
        if value is None:
            return None
        return Rule(
            action=StrategyAction.SELL,
            side=side,
            amount=_clause_amount(clause, AmountKeyword.ALL),
            condition=Condition(type=ConditionType.PROFIT_PERCENT, value=value),
        )

    return _parse_market_entry(clause, side, platform, quote)


def detect_platform(text: str) -> Platform:
    """Leverage, long/short or a token name means crypto; otherwise polymarket."""
    if CRYPTO_KEYWORDS.search(text.lower()):
        return Platform.CRYPTO
    return Platform.POLYMARKET


def detect_side(text: str, platform: Platform) -> RuleSide:
    text = text.lower()
    if platform == Platform.POLYMARKET:
        has_yes = re.search(r"\byes\b", text) is not None
        has_no = re.search(r"\bno\b", text) is not None
        if has_no and not has_yes:
            return RuleSide.NO
        if not has_yes and re.search(r"\bshort\b", text):
            return correct_side(RuleSide.SHORT, platform)
        return RuleSide.YES
    if re.search(r"\bshort\b", text):
        return RuleSide.SHORT
    return RuleSide.LONG


def detect_symbol(text: str) -> str:
    """Map a token name in the text to its USDT pair (default BTC/USDT)."""
    text = text.lower()
    for pattern, symbol in SYMBOL_PATTERNS:
        if pattern.search(text):
            return symbol
    return DEFAULT_CRYPTO_SYMBOL


def generate_strategy_name(rules: List[Rule], platform: Platform) -> str:
    prefix = "Crypto" if platform == Platform.CRYPTO else "Poly"
    conditions = [r.condition.type for r in rules if r.condition is not None]
    actions = [r.action for r in rules]

    if ConditionType.TIME_INTERVAL in conditions:
        return f"{prefix} DCA"
    if StrategyAction.BUY in actions and ConditionType.PRICE_BELOW in conditions:
        return f"{prefix} Dip Buy"
    if ConditionType.PROFIT_PERCENT in conditions:
        return f"{prefix} Take Profit"
    return f"{prefix} Strategy"


# =============================================================================
# LLM-Backed Parser
# =============================================================================

class LLMStrategyParser(StrategyParser):
    """
    Parser backed by an external LLM parse service.

    The reply is validated rule by rule through the schema models.
    Invalid rules are dropped; if none survive, or the call fails, the
    rule-based parser answers instead.
    """

    def __init__(
        self,
        client: LLMClient,
        fallback: Optional[StrategyParser] = None,
    ) -> None:
        self._client = client
        self._fallback = fallback or RuleBasedStrategyParser()
        logger.info("[PARSER-INIT] LLM strategy parser initialized")

    def parse(
        self,
        description: str,
        context: Union[StrategyContext, Dict[str, Any], None] = None,
        correlation_id: Optional[str] = None,
    ) -> ParsedStrategy:
        ctx = _as_context(context)

        response = self._client.parse_strategy(
            description,
            ctx.model_dump(mode="json", exclude_none=True),
            correlation_id=correlation_id,
        )

        if not response.success:
            logger.warning(
                f"[{SIM_ERROR_LLM_FALLBACK}] LLM parse failed, using rules | "
                f"error={response.error_code} | "
                f"correlation_id={correlation_id}"
            )
            return self._fallback.parse(description, ctx, correlation_id)

        try:
            raw = extract_json(response.data)
            strategy = self._validate_and_build(raw, description, ctx)
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning(
                f"[{SIM_ERROR_LLM_FALLBACK}] LLM reply rejected, using rules | "
                f"error={str(e)[:200]} | "
                f"correlation_id={correlation_id}"
            )
            return self._fallback.parse(description, ctx, correlation_id)

        logger.info(
            f"[PARSER-LLM] Parsed strategy | name={strategy.name} | "
            f"rules={len(strategy.rules)} | correlation_id={correlation_id}"
        )
        return strategy

    def _validate_and_build(
        self,
        raw: Dict[str, Any],
        description: str,
        ctx: StrategyContext,
    ) -> ParsedStrategy:
        if ctx.platform is not None:
            platform = ctx.platform
        else:
            try:
                platform = Platform(str(raw.get("platform") or Platform.POLYMARKET.value))
            except ValueError:
                platform = Platform.POLYMARKET

        rules = _validate_rules(raw.get("rules"), platform)
        if not rules:
            raise ValueError("LLM reply contained no valid rules")

        capital = ctx.capital
        if capital is None:
            capital = raw.get("capital") or DEFAULT_CAPITAL

        symbol = ctx.symbol or raw.get("symbol")
        if symbol is None and platform == Platform.CRYPTO:
            symbol = detect_symbol(description)

        return validate_strategy_schema({
            "name": raw.get("name") or generate_strategy_name(rules, platform),
            "description": raw.get("description") or description,
            "platform": platform,
            "symbol": symbol,
            "market_id": ctx.market_id or raw.get("market_id") or raw.get("marketId"),
            "capital": capital,
            "rules": rules,
            "active": raw.get("active") is not False,
        })


def _validate_rules(raw_rules: Any, platform: Platform) -> List[Rule]:
    """Keep rules with a known action; correct sides; drop the rest."""
    if not isinstance(raw_rules, list):
        return []

    valid: List[Rule] = []
    for raw_rule in raw_rules:
        if not isinstance(raw_rule, dict):
            continue
        if raw_rule.get("action") not in ("buy", "sell", "hold"):
            continue
        candidate = dict(raw_rule)
        if candidate.get("side"):
            try:
                side = RuleSide(str(candidate["side"]).lower())
            except ValueError:
                side = RuleSide.YES if platform == Platform.POLYMARKET else RuleSide.LONG
            candidate["side"] = correct_side(side, platform)
        try:
            valid.append(Rule(**candidate))
        except ValidationError as e:
            logger.debug(f"[PARSER-LLM] Dropping invalid rule | errors={e.error_count()}")
    return valid


def extract_json(data: Any) -> Dict[str, Any]:
    """
    Pull the strategy object out of an LLM reply.

    Accepts a JSON object directly, an object wrapped under "strategy",
    or free text under "content"/"text" containing a JSON object.
    """
    if isinstance(data, dict) and isinstance(data.get("strategy"), dict):
        return data["strategy"]
    if isinstance(data, dict) and "rules" in data:
        return data

    text = None
    if isinstance(data, str):
        text = data
    elif isinstance(data, dict):
        text = data.get("content") or data.get("text")

    if not isinstance(text, str):
        raise ValueError("LLM reply has no strategy object")

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", text)
        if not match:
            raise ValueError("LLM reply contains no JSON object")
        parsed = json.loads(match.group(0))

    if not isinstance(parsed, dict):
        raise ValueError("LLM reply JSON is not an object")
    return parsed


# =============================================================================
# Module Functions
# =============================================================================

def parse_strategy(
    description: str,
    context: Union[StrategyContext, Dict[str, Any], None] = None,
) -> ParsedStrategy:
    """Rule-based parse; relative entries are quoted from the default mock prices."""
    return RuleBasedStrategyParser().parse(description, context)


def create_strategy_parser(
    config: SimConfig,
    client: Optional[LLMClient] = None,
    price_source: Optional[PriceSource] = None,
) -> StrategyParser:
    """Build the parser selected by STRATEGY_PARSER_MODE."""
    rules = RuleBasedStrategyParser(price_source)
    if config.parser_mode == PARSER_MODE_LLM:
        llm_client = client or LLMClient(
            base_url=config.llm_url or "",
            timeout=config.llm_timeout_seconds,
        )
        return LLMStrategyParser(llm_client, fallback=rules)
    return rules


POLYMARKET_EXAMPLES = [
    {"description": "Buy YES if odds drop below 40 cents", "name": "Dip Buy"},
    {"description": "Sell when I'm up 25%", "name": "Take Profit"},
    {"description": "DCA $20 every hour into YES", "name": "Hourly DCA"},
    {"description": "Buy NO if NO drops below 30 cents, stop loss at 15%", "name": "NO Contrarian"},
    {
        "description": "Buy YES below 45 cents, sell half at 20% profit, sell all at 35%",
        "name": "Staged Exit",
    },
]

CRYPTO_EXAMPLES = [
    {"description": "Buy BTC if it drops 5%, sell at 10% profit", "name": "BTC Dip Buy"},
    {"description": "DCA $50 into ETH every 4 hours", "name": "ETH DCA"},
    {"description": "Stop loss at -10%, take profit at 20%", "name": "Risk Management"},
    {"description": "Short SOL if it rises 15%, cover at -8%", "name": "SOL Short"},
    {"description": "Long BTC with 3x leverage, stop at -5%", "name": "Leveraged Long"},
]


def get_examples(platform: Union[Platform, str]) -> List[Dict[str, str]]:
    """Five canned {description, name} examples for the platform."""
    if Platform(platform) == Platform.POLYMARKET:
        return [dict(e) for e in POLYMARKET_EXAMPLES]
    return [dict(e) for e in CRYPTO_EXAMPLES]


__all__ = [
    "StrategyContext",
    "StrategyParser",
    "RuleBasedStrategyParser",
    "LLMStrategyParser",
    "parse_strategy",
    "create_strategy_parser",
    "detect_platform",
    "detect_side",
    "detect_symbol",
    "generate_strategy_name",
    "extract_json",
    "get_examples",
]
