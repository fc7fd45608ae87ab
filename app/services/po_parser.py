"""
Purchase-order line item extraction driven by a template registry.

Customers, PO-number patterns and line templates live in a JSON file
(``data/customer_templates.json``). Supporting a new customer layout means
adding an entry there; the algorithm below does not change.
"""
from __future__ import annotations

import json
import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.models import OrderLineItem, ParsedOrder

logger = configure_logging(__name__)

DEFAULT_REGISTRY_PATH = Path(__file__).resolve().parent / "data" / "customer_templates.json"


@lru_cache(maxsize=None)
def _compile(pattern: str, ignore_case: bool) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE if ignore_case else 0)


class _PatternEntry(BaseModel):
    pattern: str
    ignore_case: bool = True

    @field_validator("pattern")
    @classmethod
    def _valid_regex(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid pattern {value!r}: {exc}") from exc
        return value

    @property
    def regex(self) -> re.Pattern:
        return _compile(self.pattern, self.ignore_case)


class CustomerPattern(_PatternEntry):
    name: str
    po_fallback_literal: Optional[str] = None

    def found_in(self, text: str) -> bool:
        return self.regex.search(text) is not None


class PoPattern(_PatternEntry):
    @model_validator(mode="after")
    def _needs_po_group(self) -> "PoPattern":
        if "po" not in self.regex.groupindex:
            raise ValueError(f"PO pattern needs a 'po' group: {self.pattern}")
        return self

    def search(self, text: str) -> Optional[str]:
        match = self.regex.search(text)
        return match.group("po") if match else None


class LineTemplate(_PatternEntry):
    name: str
    customer: str
    scope: Literal["text", "line"] = "line"
    ignore_case: bool = False
    description: Optional[str] = None
    description_format: Optional[str] = None
    description_cut: Optional[str] = None
    style_from_description: bool = False

    @model_validator(mode="after")
    def _check_groups(self) -> "LineTemplate":
        groups = set(self.regex.groupindex)
        missing = {"qty", "total"} - groups
        if missing:
            raise ValueError(f"template {self.name} lacks group(s): {', '.join(sorted(missing))}")
        if "style" not in groups and not self.style_from_description:
            raise ValueError(f"template {self.name} has no way to produce a style")
        if "description" not in groups and not (self.description or self.description_format):
            raise ValueError(f"template {self.name} has no way to produce a description")
        return self

    def build_item(self, match: re.Match, customer: str, po: str) -> OrderLineItem:
        fields: Dict[str, str] = {key: value for key, value in match.groupdict().items() if value is not None}

        description = self.description or fields.get("description", "")
        if self.description_format:
            description = self.description_format.format(**fields)
        if self.description_cut:
            description = description.split(self.description_cut)[0]
        description = description.strip()

        if self.style_from_description:
            style = re.sub(r"\s", "-", fields.get("description", "")).upper()
        else:
            style = fields["style"]

        qty = parse_int(fields["qty"])
        total = parse_amount(fields["total"])
        if "unit_price" in fields:
            unit_price = parse_amount(fields["unit_price"])
        else:
            unit_price = total / qty if qty else 0.0

        return OrderLineItem(
            customer=customer,
            po=po,
            style=style,
            description=description,
            qty=qty,
            unit_price=unit_price,
            total_amount=total,
        )


class TemplateRegistry(BaseModel):
    customers: List[CustomerPattern] = Field(default_factory=list)
    po_patterns: List[PoPattern] = Field(default_factory=list)
    templates: List[LineTemplate] = Field(default_factory=list)

    def customer_named(self, name: str) -> Optional[CustomerPattern]:
        return next((entry for entry in self.customers if entry.name == name), None)


def parse_int(value: str) -> int:
    return int(value.replace(",", "").strip())


def parse_amount(value: str) -> float:
    """``"1,234.50"`` -> 1234.5; a trailing sentence period is ignored."""
    return float(value.replace(",", "").strip().rstrip("."))


def load_registry(path: Optional[Path] = None) -> TemplateRegistry:
    path = Path(path or DEFAULT_REGISTRY_PATH)
    registry = TemplateRegistry.model_validate(json.loads(path.read_text(encoding="utf-8")))
    logger.info(
        "Loaded %s customer(s) and %s template(s) from %s",
        len(registry.customers),
        len(registry.templates),
        path.name,
    )
    return registry


@lru_cache()
def get_registry() -> TemplateRegistry:
    return load_registry(get_settings().customer_templates_path)


# ----------------------------------------------------------------------
def detect_customer(text: str, registry: TemplateRegistry) -> Optional[CustomerPattern]:
    return next((entry for entry in registry.customers if entry.found_in(text)), None)


def detect_po(text: str, registry: TemplateRegistry, customer: Optional[CustomerPattern]) -> str:
    for entry in registry.po_patterns:
        po = entry.search(text)
        if po:
            return po
    # customer-specific literal, only when no pattern matched
    if customer and customer.po_fallback_literal and customer.po_fallback_literal in text:
        return customer.po_fallback_literal
    return ""


def _build(template: LineTemplate, match: re.Match, customer: str, po: str) -> Optional[OrderLineItem]:
    """A match whose numbers do not parse is dropped, not raised."""
    try:
        return template.build_item(match, customer, po)
    except (ValueError, KeyError) as exc:
        logger.warning("Skipping %s match %r: %s", template.name, match.group(0)[:80], exc)
        return None


def parse_order(text: str, registry: Optional[TemplateRegistry] = None) -> ParsedOrder:
    """Extract customer, PO number and line items; unknown layouts give no items."""
    registry = registry or get_registry()
    if not text or not text.strip():
        return ParsedOrder()

    customer = detect_customer(text, registry)
    customer_name = customer.name if customer else ""
    po = detect_po(text, registry, customer)

    # whole-document templates run when their customer appears anywhere in the text
    items: List[OrderLineItem] = []
    for template in registry.templates:
        if template.scope != "text":
            continue
        owner = registry.customer_named(template.customer)
        if owner is None or not owner.found_in(text):
            continue
        for match in template.regex.finditer(text):
            item = _build(template, match, template.customer, po)
            if item is not None:
                items.append(item)
    if items:
        return ParsedOrder(customer=customer_name, po=po, items=items)

    line_templates = [template for template in registry.templates if template.scope == "line"]
    for line in (raw.strip() for raw in text.splitlines()):
        if not line:
            continue
        for template in line_templates:
            match = template.regex.search(line)
            if match:
                item = _build(template, match, customer_name or template.customer, po)
                if item is not None:
                    items.append(item)
                break

    return ParsedOrder(customer=customer_name, po=po, items=items)
