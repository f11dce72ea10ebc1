"""
Law-table configuration loading.

Reads a YAML law table. Validates bands and rules. Builds the scorer and
rule engine they describe. Any inconsistency raises InvalidLawTable here,
at load time, never later during classification.

Example file:

    bands:
      - {law: dissonance, lower: 0.0,  upper: 0.25}
      - {law: neutral,    lower: 0.25, upper: 0.5}
      - {law: echo,       lower: 0.5,  upper: 0.75}
      - {law: harmony,    lower: 0.75, upper: 1.0}
    default: reject
    allow_rewrite: true
    extends_default: false
    rules:
      addition:
        - {laws: [harmony, echo], verdict: allow}
        - {laws: [neutral, dissonance], verdict: rewrite, to: [neutral, neutral]}
      transform:
        - {laws: [harmony, dissonance], verdict: reject, symmetric: false}
"""

from __future__ import annotations
from typing import Any, Dict, Optional
from dataclasses import dataclass
from pathlib import Path
import logging

import yaml

from .errors import InvalidLawTable
from .rules import ResonanceRuleEngine, RuleTable, VerdictKind, default_rule_table
from .scorer import LawBand, LawBands, ResonanceLaw, ResonanceScorer

logger = logging.getLogger(__name__)

# Shipped YAML rendition of default_rule_table()
DEFAULT_LAW_TABLE = Path(__file__).parent / "data" / "default_laws.yaml"


@dataclass(frozen=True)
class LawConfig:
    """Validated bands + rule table + rewrite switch."""
    bands: LawBands
    table: RuleTable
    allow_rewrite: bool = False

    def scorer(self) -> ResonanceScorer:
        return ResonanceScorer(self.bands)

    def engine(self) -> ResonanceRuleEngine:
        return ResonanceRuleEngine(self.table, allow_rewrite=self.allow_rewrite)


def _law(value: Any, where: str) -> ResonanceLaw:
    try:
        return ResonanceLaw.parse(value)
    except ValueError as exc:
        raise InvalidLawTable(f"{where}: {exc}") from None


def _flag(mapping: Dict[str, Any], key: str, default: bool, where: str) -> bool:
    value = mapping.get(key, default)
    if not isinstance(value, bool):
        raise InvalidLawTable(f"{where}.{key} must be true or false, got {value!r}")
    return value


def _bands_from(raw: Any) -> LawBands:
    if not isinstance(raw, list) or not raw:
        raise InvalidLawTable("'bands' must be a non-empty list")
    bands = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict) or not {"law", "lower", "upper"} <= set(item):
            raise InvalidLawTable(f"bands[{i}] needs law, lower and upper")
        try:
            lower, upper = float(item["lower"]), float(item["upper"])
        except (TypeError, ValueError):
            raise InvalidLawTable(f"bands[{i}] bounds must be numbers") from None
        bands.append(LawBand(_law(item["law"], f"bands[{i}]"), lower, upper))
    return LawBands(bands)


def _rules_into(table: RuleTable, raw: Any) -> None:
    if not isinstance(raw, dict):
        raise InvalidLawTable("'rules' must map op kinds to rule lists")
    for op_kind, rules in raw.items():
        if not isinstance(rules, list):
            raise InvalidLawTable(f"rules.{op_kind} must be a list")
        for i, rule in enumerate(rules):
            where = f"rules.{op_kind}[{i}]"
            if not isinstance(rule, dict) or "laws" not in rule or "verdict" not in rule:
                raise InvalidLawTable(f"{where} needs laws and verdict")
            laws = rule["laws"]
            if not isinstance(laws, (list, tuple)) or len(laws) != 2:
                raise InvalidLawTable(f"{where}.laws must name exactly two laws")
            try:
                verdict = VerdictKind.parse(rule["verdict"])
            except ValueError as exc:
                raise InvalidLawTable(f"{where}: {exc}") from None
            target = rule.get("to")
            if target is not None:
                if not isinstance(target, (list, tuple)) or len(target) != 2:
                    raise InvalidLawTable(f"{where}.to must name exactly two laws")
                target = (_law(target[0], where), _law(target[1], where))
            table.set(_law(laws[0], where), _law(laws[1], where), str(op_kind), verdict,
                      rewrite_to=target, reason=str(rule.get("reason", "")),
                      symmetric=_flag(rule, "symmetric", True, where))


def law_config_from_dict(data: Optional[Dict[str, Any]]) -> LawConfig:
    """
    Build a LawConfig from parsed YAML (or any equivalent dict).

    Missing 'bands' means the default bands. Missing 'rules' means the
    default rule table; with 'rules' present the table starts empty unless
    'extends_default' is true.
    """
    data = data or {}
    if not isinstance(data, dict):
        raise InvalidLawTable("Law config must be a mapping")

    bands = _bands_from(data["bands"]) if "bands" in data else LawBands.default()

    if "rules" in data:
        if _flag(data, "extends_default", False, "config"):
            table = default_rule_table()
        else:
            try:
                table = RuleTable(default=data.get("default", "reject"))
            except ValueError as exc:
                raise InvalidLawTable(f"default: {exc}") from None
        _rules_into(table, data["rules"])
    else:
        table = default_rule_table()

    return LawConfig(bands=bands, table=table, allow_rewrite=_flag(data, "allow_rewrite", False, "config"))


def load_law_config(path: str = DEFAULT_LAW_TABLE) -> LawConfig:
    """Load and validate a YAML law table (the shipped default when no path is given)."""
    with open(Path(path)) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise InvalidLawTable(f"Unparseable law table {path}: {exc}") from exc
    config = law_config_from_dict(data)
    logger.info("Loaded law table from %s: %d band(s), %d rule(s), rewrite %s",
                path, len(config.bands), len(config.table),
                "on" if config.allow_rewrite else "off")
    return config
