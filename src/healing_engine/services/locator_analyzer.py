"""
Failed-locator analysis and prompt construction.

Turns a failed selector plus the captured DOM context into a LocatorAnalysis
and renders it as the markdown prompt sent to the selector provider.
"""

import logging
import re
from typing import List, Optional

from ..core.models import DomSnapshot, ElementContext, LocatorAnalysis, LocatorEntry, SelectorDialect
from .selector_syntax import extract_selector_hints, infer_dialect

logger = logging.getLogger(__name__)

# Ordered: the first matching rule wins
ELEMENT_TYPE_RULES = [
    (("button", "btn", "submit"), "button (clickable submit element)"),
    (("input", "field", "username", "password", "email"), "input"),
    (("link", "href"), "link"),
    (("select", "dropdown"), "select"),
    (("checkbox",), "checkbox"),
    (("radio",), "radio"),
    (("message", "error", "success", "flash"), "message/notification element"),
    (("text", "label", "heading", "title"), "text"),
    (("form",), "form"),
]


def _match_element_type(hint: str) -> Optional[str]:
    lowered = hint.lower()
    for keywords, element_type in ELEMENT_TYPE_RULES:
        if any(k in lowered for k in keywords):
            return element_type
    return None


class LocatorAnalyzer:
    """Builds analyses and prompts for failed locators."""

    def __init__(self, max_prompt_html_chars: int = 4000):
        self.max_prompt_html_chars = max_prompt_html_chars

    def infer_element_type(self, element_key: str, failed_selector: str) -> str:
        """Element type from the key; the selector is only consulted when the key says nothing."""
        from_key = _match_element_type(element_key or "")
        if from_key:
            return from_key

        from_selector = _match_element_type(failed_selector)
        if from_selector:
            return from_selector

        if infer_dialect(failed_selector) == SelectorDialect.CSS:
            tag = re.match(r"^([a-zA-Z]+)", failed_selector.strip())
            if tag:
                return tag.group(1).lower()
        return "unknown"

    def analyze(self, failed_selector: str, dom_snapshot: DomSnapshot,
                locator_entry: Optional[LocatorEntry] = None,
                element_key: Optional[str] = None) -> LocatorAnalysis:
        hints = extract_selector_hints(failed_selector)

        known: List[str] = []
        if locator_entry is not None:
            for selector in [locator_entry.primary, *locator_entry.fallbacks]:
                if selector and selector not in known:
                    known.append(selector)

        attribute_hints = dict(hints["attributes"])
        if hints["id"]:
            attribute_hints["id"] = hints["id"]
        if hints["classes"]:
            attribute_hints["class"] = " ".join(hints["classes"])
        if hints["test_id"]:
            attribute_hints["data-testid"] = hints["test_id"]

        analysis = LocatorAnalysis(
            element_key=element_key or "",
            element_type=self.infer_element_type(element_key or "", failed_selector),
            failed_selector=failed_selector,
            known_selectors=known,
            attribute_hints=attribute_hints,
            expected_text=hints["expected_text"],
            dom_snapshot=dom_snapshot,
        )
        logger.debug(
            f"Analyzed '{failed_selector}' for '{analysis.element_key}': "
            f"type={analysis.element_type}, hints={attribute_hints}")
        return analysis

    @staticmethod
    def format_element(el: ElementContext) -> str:
        parts = [f"<{el.tag_name}"]
        if el.id:
            parts.append(f' id="{el.id}"')
        if el.classes:
            parts.append(f' class="{" ".join(el.classes)}"')
        for attr, value in (("name", el.name), ("type", el.type), ("role", el.role),
                            ("aria-label", el.aria_label), ("placeholder", el.placeholder)):
            if value:
                parts.append(f' {attr}="{value}"')
        testid = el.attributes.get("data-testid")
        if testid:
            parts.append(f' data-testid="{testid}"')
        parts.append(">")
        if el.text:
            parts.append(f' Text: "{el.text}"')
        return "".join(parts)

    def format_dom_context(self, snapshot: Optional[DomSnapshot]) -> str:
        if snapshot is None:
            return "(no DOM context available)"

        lines = [f"Page Title: {snapshot.title}", f"Page URL: {snapshot.url}", ""]

        if snapshot.element:
            el = snapshot.element
            lines.append("Last Known Element Details:")
            lines.append(self.format_element(el))
            if el.parent_tag:
                parent_classes = f' class="{" ".join(el.parent_classes)}"' if el.parent_classes else ""
                lines.append(f"Parent: <{el.parent_tag}{parent_classes}>")
            if el.sibling_tags:
                lines.append(f"Siblings: {', '.join(el.sibling_tags)}")
            lines.append("")

        if snapshot.similar_elements:
            lines.append("Similar Elements on Page:")
            for i, el in enumerate(snapshot.similar_elements, 1):
                lines.append(f"  {i}. {self.format_element(el)}")
            lines.append("")

        if snapshot.html:
            lines.append("Relevant DOM Structure:")
            lines.append("```html")
            lines.append(snapshot.html[:self.max_prompt_html_chars])
            if len(snapshot.html) > self.max_prompt_html_chars:
                lines.append("... [truncated]")
            lines.append("```")

        return "\n".join(lines)

    def build_prompt(self, analysis: LocatorAnalysis) -> str:
        """Render the analysis as a deterministic markdown prompt."""
        parts = [
            "# Element Locator Healing Request",
            "",
            "## Element Key (Variable Name)",
            f"**{analysis.element_key}**",
            "",
            "## Required Element Type",
            f"**IMPORTANT: You MUST find a {analysis.element_type}. Do NOT select other element types.**",
            "",
            "## Failed Selector",
            f"`{analysis.failed_selector}`",
            "",
        ]

        if analysis.attribute_hints:
            parts.append("## Expected Attributes")
            for key, value in analysis.attribute_hints.items():
                parts.append(f"- {key}: {value}")
            parts.append("")

        if analysis.expected_text:
            parts.extend(["## Expected Text Content", f'"{analysis.expected_text}"', ""])

        if analysis.known_selectors:
            parts.append("## Previously Working Selectors")
            parts.append("These no longer resolve reliably; use them as hints, do not repeat them verbatim.")
            for selector in analysis.known_selectors:
                parts.append(f"- `{selector}`")
            parts.append("")

        parts.extend([
            "## Current DOM Context",
            self.format_dom_context(analysis.dom_snapshot),
            "",
            "## Task",
            f'Find selectors for the **{analysis.element_type}** element named "{analysis.element_key}".',
            "Generate 3-5 alternative selectors (CSS, XPath, or role=/text=/label=/placeholder=/testid= shorthand).",
            "Prefer stable attributes (data-testid, id, name, aria-label, role, visible text) "
            "over positional or index-based XPath.",
            "Prioritize stability and uniqueness. Explain your reasoning.",
        ])
        return "\n".join(parts)
