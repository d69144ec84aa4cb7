"""Label selector parsing and matching."""
from typing import Dict, Mapping, Optional, Union

from strata.core.errors import ValidationError

Selector = Union[str, Mapping[str, str], None]


def parse_selector(selector: Selector) -> Dict[str, str]:
    """Parse "k1=v1,k2=v2" (or pass a mapping through) into a dict."""
    if not selector:
        return {}
    if isinstance(selector, Mapping):
        return dict(selector)

    parsed = {}
    for term in selector.split(","):
        term = term.strip()
        if not term:
            continue
        key, sep, value = term.partition("=")
        if not sep or not key.strip():
            raise ValidationError(f"Invalid label selector term '{term}'")
        parsed[key.strip()] = value.strip()
    return parsed


def selector_string(labels: Mapping[str, str]) -> str:
    """Inverse of parse_selector with keys in sorted order."""
    return ",".join(f"{key}={labels[key]}" for key in sorted(labels))


def matches(labels: Optional[Mapping[str, str]], selector: Selector) -> bool:
    labels = labels or {}
    return all(labels.get(k) == v for k, v in parse_selector(selector).items())


def expression_matches(labels: Mapping[str, str], key: str, operator: str, values) -> bool:
    if operator == "In":
        return key in labels and labels[key] in values
    if operator == "NotIn":
        return key not in labels or labels[key] not in values
    if operator == "Exists":
        return key in labels
    if operator == "DoesNotExist":
        return key not in labels
    raise ValidationError(f"Unsupported selector operator '{operator}'")


def label_selector_matches(selector, labels: Optional[Mapping[str, str]]) -> bool:
    """Match a LabelSelector model (match_labels and match_expressions) against labels."""
    labels = labels or {}
    if not matches(labels, selector.match_labels):
        return False
    return all(
        expression_matches(labels, req.key, req.operator, req.values)
        for req in selector.match_expressions
    )
