"""
Structured bet selections.

A selection is decoded once, when the bet is placed, from the provider's
market name and the free-text label shown in the bet slip into a
`SelectionCode`: a market tag plus the typed fields that market needs. The
code is stored with the bet and settlement evaluates it against the final
score, so nothing at settlement time depends on substring matching.

Market names and labels are accepted in English (as API-Football sends them)
and in Spanish (as the bet slip displays them).
"""

import logging
import re
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Dict, Optional, Tuple, Any

from app.schemas.core import Outcome
from app.utils.odds import strip_price_suffix

logger = logging.getLogger(__name__)


class Market(str, Enum):
    MATCH_WINNER = "match_winner"
    FIRST_HALF_WINNER = "first_half_winner"
    SECOND_HALF_WINNER = "second_half_winner"
    DOUBLE_CHANCE = "double_chance"
    BOTH_TEAMS_SCORE = "both_teams_score"
    CORRECT_SCORE = "correct_score"
    GOALS_OVER_UNDER = "goals_over_under"
    HT_FT_DOUBLE = "ht_ft_double"
    RESULT_TOTAL_GOALS = "result_total_goals"
    RESULT_BOTH_TEAMS_SCORE = "result_both_teams_score"


class UnsupportedSelection(ValueError):
    pass


# Checked in order: combined markets first so "resultado/total goles" never
# falls through to the plain winner market.
MARKET_ALIASES: Tuple[Tuple[Market, Tuple[str, ...]], ...] = (
    (Market.RESULT_TOTAL_GOALS, ("result/total goals", "resultado/total goles", "result & total",
                                "resultado & total")),
    (Market.RESULT_BOTH_TEAMS_SCORE, ("result/both teams score", "resultado/ambos marcan",
                                     "result & both", "resultado & ambos")),
    (Market.HT_FT_DOUBLE, ("ht/ft double", "ht/ft", "medio tiempo/final", "descanso/final")),
    (Market.FIRST_HALF_WINNER, ("first half winner", "1st half winner", "half time winner", "halftime winner",
                                "ht winner", "ganador del 1er tiempo", "ganador primer tiempo",
                                "ganador 1ª parte")),
    (Market.SECOND_HALF_WINNER, ("second half winner", "2nd half winner", "ganador del 2do tiempo",
                                 "ganador segundo tiempo", "ganador 2ª parte")),
    (Market.DOUBLE_CHANCE, ("double chance", "doble oportunidad")),
    (Market.CORRECT_SCORE, ("correct score", "exact score", "resultado exacto")),
    (Market.BOTH_TEAMS_SCORE, ("both teams to score", "both teams score", "ambos equipos marcan",
                               "ambos marcan", "btts")),
    (Market.GOALS_OVER_UNDER, ("goals over/under", "goles más/menos de", "goles mas/menos de",
                               "over/under", "total goals")),
    (Market.MATCH_WINNER, ("match winner", "ganador del partido", "1x2", "winner", "ganador",
                           "resultado")),
)

OUTCOME_ALIASES: Dict[str, Outcome] = {
    "home": Outcome.HOME, "local": Outcome.HOME, "1": Outcome.HOME,
    "away": Outcome.AWAY, "visitante": Outcome.AWAY, "2": Outcome.AWAY,
    "draw": Outcome.DRAW, "empate": Outcome.DRAW, "x": Outcome.DRAW,
}

DOUBLE_CHANCE_SHORTHAND = {
    "1x": (Outcome.HOME, Outcome.DRAW),
    "x2": (Outcome.DRAW, Outcome.AWAY),
    "12": (Outcome.HOME, Outcome.AWAY),
}

YES_WORDS = {"yes", "sí", "si"}
NO_WORDS = {"no"}

_SCORE_RE = re.compile(r"^\s*(\d+)\s*[-:]\s*(\d+)\s*$")
_LINE_RE = re.compile(r"^\s*(over|under|más|mas|menos|o|u)\s*(?:de\s*)?(\d+(?:\.\d+)?)\s*$")

# A market restricted to one half must decode to a half-period market, never to
# its full-match namesake.
_HALF_PERIOD_RE = re.compile(
    r"first half|second half|1st half|2nd half|half[\s-]?time|\bht\b|primer tiempo|segundo tiempo|"
    r"1er tiempo|2do tiempo|medio tiempo|descanso|1ª parte|2ª parte"
)
HALF_PERIOD_MARKETS = {Market.FIRST_HALF_WINNER, Market.SECOND_HALF_WINNER, Market.HT_FT_DOUBLE}


@dataclass(frozen=True)
class SelectionCode:
    market: Market
    outcome: Optional[Outcome] = None
    outcomes: Tuple[Outcome, ...] = field(default_factory=tuple)
    halftime: Optional[Outcome] = None
    home_goals: Optional[int] = None
    away_goals: Optional[int] = None
    line: Optional[float] = None
    over: Optional[bool] = None
    btts: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["market"] = self.market.value
        data["outcome"] = self.outcome.value if self.outcome else None
        data["halftime"] = self.halftime.value if self.halftime else None
        data["outcomes"] = [o.value for o in self.outcomes]
        return {k: v for k, v in data.items() if v not in (None, [])}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectionCode":
        return cls(
            market=Market(data["market"]),
            outcome=Outcome(data["outcome"]) if data.get("outcome") else None,
            outcomes=tuple(Outcome(o) for o in data.get("outcomes", [])),
            halftime=Outcome(data["halftime"]) if data.get("halftime") else None,
            home_goals=data.get("home_goals"),
            away_goals=data.get("away_goals"),
            line=data.get("line"),
            over=data.get("over"),
            btts=data.get("btts"),
        )


@dataclass(frozen=True)
class FixtureResult:
    home_goals: int
    away_goals: int
    halftime_home: Optional[int] = None
    halftime_away: Optional[int] = None

    @property
    def total(self) -> int:
        return self.home_goals + self.away_goals

    @property
    def outcome(self) -> Outcome:
        return outcome_from_goals(self.home_goals, self.away_goals)

    @property
    def has_halftime(self) -> bool:
        return self.halftime_home is not None and self.halftime_away is not None

    @property
    def halftime_outcome(self) -> Optional[Outcome]:
        if not self.has_halftime:
            return None
        return outcome_from_goals(self.halftime_home, self.halftime_away)

    @property
    def second_half_outcome(self) -> Optional[Outcome]:
        if not self.has_halftime:
            return None
        return outcome_from_goals(self.home_goals - self.halftime_home, self.away_goals - self.halftime_away)


def outcome_from_goals(home: int, away: int) -> Outcome:
    if home > away:
        return Outcome.HOME
    if home < away:
        return Outcome.AWAY
    return Outcome.DRAW


def _match_market(name: str) -> Optional[Market]:
    for tag, aliases in MARKET_ALIASES:
        if name in aliases:
            return tag
    for tag, aliases in MARKET_ALIASES:
        if any(alias in name for alias in aliases):
            return tag
    return None


def decode_market(market: str) -> Market:
    name = (market or "").strip().lower()
    tag = _match_market(name)
    if tag is None:
        raise UnsupportedSelection(f"Unsupported selection market: {market!r}")
    if tag not in HALF_PERIOD_MARKETS and _HALF_PERIOD_RE.search(name):
        raise UnsupportedSelection(f"Unsupported half-period market: {market!r}")
    return tag


def _outcome(token: str) -> Outcome:
    key = token.strip().lower()
    if key in OUTCOME_ALIASES:
        return OUTCOME_ALIASES[key]
    raise UnsupportedSelection(f"Unsupported selection outcome: {token!r}")


def _line(token: str) -> Tuple[float, bool]:
    match = _LINE_RE.match(token.strip().lower())
    if not match:
        raise UnsupportedSelection(f"Unsupported goals line: {token!r}")
    direction, value = match.groups()
    return float(value), direction in ("over", "más", "mas", "o")


def _yes_no(token: str) -> bool:
    key = token.strip().lower()
    if key in YES_WORDS:
        return True
    if key in NO_WORDS:
        return False
    raise UnsupportedSelection(f"Unsupported yes/no selection: {token!r}")


def _pair(label: str) -> Tuple[str, str]:
    parts = [p for p in re.split(r"\s*(?:/|&|\band\b)\s*", label) if p]
    if len(parts) != 2:
        raise UnsupportedSelection(f"Expected a two-part selection: {label!r}")
    return parts[0], parts[1]


def decode_selection(market: str, selection: str) -> SelectionCode:
    tag = decode_market(market)
    label = strip_price_suffix(selection).lower()
    if not label:
        raise UnsupportedSelection("Empty selection")

    if tag in (Market.MATCH_WINNER, Market.FIRST_HALF_WINNER, Market.SECOND_HALF_WINNER):
        return SelectionCode(market=tag, outcome=_outcome(label))

    if tag == Market.DOUBLE_CHANCE:
        compact = label.replace(" ", "")
        if compact in DOUBLE_CHANCE_SHORTHAND:
            outcomes = DOUBLE_CHANCE_SHORTHAND[compact]
        else:
            parts = re.split(r"\s*(?:/|\bo\b)\s*", label)
            if len(parts) != 2:
                raise UnsupportedSelection(f"Unsupported double chance: {selection!r}")
            outcomes = (_outcome(parts[0]), _outcome(parts[1]))
        if outcomes[0] == outcomes[1]:
            raise UnsupportedSelection(f"Unsupported double chance: {selection!r}")
        return SelectionCode(market=tag, outcomes=tuple(sorted(outcomes, key=lambda o: o.value)))

    if tag == Market.CORRECT_SCORE:
        match = _SCORE_RE.match(label)
        if not match:
            raise UnsupportedSelection(f"Unsupported correct score: {selection!r}")
        return SelectionCode(market=tag, home_goals=int(match.group(1)), away_goals=int(match.group(2)))

    if tag == Market.GOALS_OVER_UNDER:
        line, over = _line(label)
        return SelectionCode(market=tag, line=line, over=over)

    if tag == Market.BOTH_TEAMS_SCORE:
        return SelectionCode(market=tag, btts=_yes_no(label))

    first, second = _pair(label)

    if tag == Market.HT_FT_DOUBLE:
        return SelectionCode(market=tag, halftime=_outcome(first), outcome=_outcome(second))

    if tag == Market.RESULT_TOTAL_GOALS:
        line, over = _line(second)
        return SelectionCode(market=tag, outcome=_outcome(first), line=line, over=over)

    return SelectionCode(market=tag, outcome=_outcome(first), btts=_yes_no(second))


def _goals_line_hit(code: SelectionCode, total: int) -> bool:
    if code.over:
        return total > code.line
    return total < code.line


def evaluate(code: SelectionCode, result: FixtureResult) -> bool:
    """True when the selection won. Markets needing half-time data lose without it."""
    market = code.market

    if market == Market.MATCH_WINNER:
        return result.outcome == code.outcome

    if market == Market.DOUBLE_CHANCE:
        return result.outcome in code.outcomes

    if market == Market.CORRECT_SCORE:
        return result.home_goals == code.home_goals and result.away_goals == code.away_goals

    if market == Market.GOALS_OVER_UNDER:
        return _goals_line_hit(code, result.total)

    if market == Market.BOTH_TEAMS_SCORE:
        both_scored = result.home_goals > 0 and result.away_goals > 0
        return both_scored == code.btts

    if market == Market.RESULT_TOTAL_GOALS:
        return result.outcome == code.outcome and _goals_line_hit(code, result.total)

    if market == Market.RESULT_BOTH_TEAMS_SCORE:
        both_scored = result.home_goals > 0 and result.away_goals > 0
        return result.outcome == code.outcome and both_scored == code.btts

    if not result.has_halftime:
        logger.warning(f"No half-time score available for {market.value} selection")
        return False

    if market == Market.FIRST_HALF_WINNER:
        return result.halftime_outcome == code.outcome

    if market == Market.SECOND_HALF_WINNER:
        return result.second_half_outcome == code.outcome

    return result.halftime_outcome == code.halftime and result.outcome == code.outcome
