"""
Selector dialect handling.

Selectors arrive as plain strings in one of several syntax families. Selenium
only understands CSS and XPath, so the semantic shorthands (``role=``,
``text=``, ``label=``, ``placeholder=``, ``testid=``) are translated to XPath
before they reach the driver.
"""

import re
from typing import Any, Dict, Optional, Tuple

from selenium.webdriver.common.by import By

from ..core.models import SelectorDialect


_PREFIX_DIALECTS = (
    ("role=", SelectorDialect.ROLE),
    ("text=", SelectorDialect.TEXT),
    ("label=", SelectorDialect.LABEL),
    ("placeholder=", SelectorDialect.PLACEHOLDER),
    ("data-testid=", SelectorDialect.TEST_ID),
    ("testid=", SelectorDialect.TEST_ID),
)

_ROLE_RE = re.compile(
    r"^role=([\w-]+)\s*(?:\[\s*name\s*=\s*(?:(['\"])(.*?)\2|([^\]'\"]+?))(?:\s+[is])?\s*\])?$")
_HAS_TEXT_RE = re.compile(r"^([a-zA-Z][\w-]*)?\s*:has-text\(\s*(['\"])(.*?)\2\s*\)$")

# Implicit ARIA roles expressed as XPath predicates on the element itself
_IMPLICIT_ROLES = {
    "button": "self::button or (self::input and (@type='button' or @type='submit' or @type='reset'))",
    "link": "(self::a and @href)",
    "textbox": ("self::textarea or (self::input and (not(@type) or @type='text' or @type='email' "
                "or @type='password' or @type='search' or @type='tel' or @type='url'))"),
    "checkbox": "(self::input and @type='checkbox')",
    "radio": "(self::input and @type='radio')",
    "heading": "self::h1 or self::h2 or self::h3 or self::h4 or self::h5 or self::h6",
    "combobox": "self::select",
    "listitem": "self::li",
    "img": "self::img",
}

ROLE_TAGS = {
    "button": "button",
    "link": "a",
    "textbox": "input",
    "checkbox": "input",
    "radio": "input",
    "combobox": "select",
    "listitem": "li",
    "img": "img",
}


def xpath_literal(value: str) -> str:
    """Quote a string for use inside an XPath 1.0 expression."""
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{p}'" for p in parts) + ")"


def _strip_quotes(value: str) -> Tuple[str, bool]:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1], True
    return value, False


def infer_dialect(selector: str) -> SelectorDialect:
    """Infer the syntax family of a selector from its prefix or shape."""
    s = selector.strip()
    if s.startswith("//") or s.startswith("(//") or s.startswith("xpath="):
        return SelectorDialect.XPATH
    for prefix, dialect in _PREFIX_DIALECTS:
        if s.startswith(prefix):
            return dialect
    return SelectorDialect.CSS


def _text_xpath(text: str, exact: bool) -> str:
    lit = xpath_literal(text)
    if exact:
        cond = f"normalize-space(.)={lit}"
    else:
        cond = f"contains(normalize-space(.), {lit})"
    # innermost element carrying the text
    return f"//*[not(self::script or self::style) and {cond} and not(*[{cond}])]"


def parse_role_selector(selector: str) -> Optional[Tuple[str, Optional[str]]]:
    """Split ``role=button[name="Login"]`` into its role and (optional) accessible name.

    The name may be single-quoted, double-quoted or bare.
    """
    match = _ROLE_RE.match(selector.strip())
    if not match:
        return None
    role, quote, quoted_name, bare_name = match.groups()
    if quote:
        return role, quoted_name
    return role, bare_name.strip() if bare_name else None


def _role_xpath(selector: str) -> str:
    parts = parse_role_selector(selector)
    if parts is None:
        raise ValueError(f"Malformed role selector: {selector}")
    role, name = parts
    predicates = [f"@role={xpath_literal(role)}"]
    if role in _IMPLICIT_ROLES:
        predicates.append(f"(not(@role) and ({_IMPLICIT_ROLES[role]}))")
    xpath = f"//*[{' or '.join(predicates)}]"
    if name:
        lit = xpath_literal(name)
        xpath += (f"[contains(normalize-space(.), {lit}) or @aria-label={lit} "
                  f"or @value={lit} or @title={lit}]")
    return xpath


def to_locator(selector: str) -> Tuple[str, str]:
    """Translate a selector string into a Selenium ``(By, value)`` pair.

    Raises:
        ValueError: If a semantic shorthand is malformed
    """
    s = selector.strip()
    if not s:
        raise ValueError("Empty selector")

    dialect = infer_dialect(s)

    if dialect == SelectorDialect.XPATH:
        return By.XPATH, s[len("xpath="):] if s.startswith("xpath=") else s

    if dialect == SelectorDialect.ROLE:
        return By.XPATH, _role_xpath(s)

    if dialect == SelectorDialect.TEXT:
        text, exact = _strip_quotes(s[len("text="):])
        return By.XPATH, _text_xpath(text, exact)

    if dialect == SelectorDialect.LABEL:
        text, _ = _strip_quotes(s[len("label="):])
        lit = xpath_literal(text)
        label = f"contains(normalize-space(.), {lit})"
        return By.XPATH, (
            "//*[self::input or self::textarea or self::select]"
            f"[@id=//label[{label}]/@for or ancestor::label[{label}] or @aria-label={lit}]"
        )

    if dialect == SelectorDialect.PLACEHOLDER:
        text, _ = _strip_quotes(s[len("placeholder="):])
        return By.XPATH, f"//*[@placeholder={xpath_literal(text)}]"

    if dialect == SelectorDialect.TEST_ID:
        value, _ = _strip_quotes(s.split("=", 1)[1])
        return By.XPATH, f"//*[@data-testid={xpath_literal(value)}]"

    if s.startswith("css="):
        s = s[len("css="):]
    has_text = _HAS_TEXT_RE.match(s)
    if has_text:
        tag, _, text = has_text.groups()
        return By.XPATH, f"//{tag or '*'}[contains(normalize-space(.), {xpath_literal(text)})]"
    return By.CSS_SELECTOR, s


def infer_tag_name(selector: str) -> Optional[str]:
    """Guess the tag name a selector is aiming at, if any."""
    s = selector.strip()
    dialect = infer_dialect(s)

    if dialect == SelectorDialect.XPATH:
        match = re.search(r"//([a-zA-Z][a-zA-Z0-9]*)", s)
        if match:
            return match.group(1).lower()
    elif dialect == SelectorDialect.ROLE:
        parts = parse_role_selector(s)
        if parts and parts[0] in ROLE_TAGS:
            return ROLE_TAGS[parts[0]]
    elif dialect == SelectorDialect.CSS:
        match = re.match(r"^(?:css=)?([a-zA-Z][a-zA-Z0-9]*)", s)
        if match:
            return match.group(1).lower()

    lowered = s.lower()
    if "button" in lowered or "btn" in lowered:
        return "button"
    if "input" in lowered:
        return "input"
    if "link" in lowered or "href" in lowered:
        return "a"
    return None


def extract_selector_hints(selector: str) -> Dict[str, Any]:
    """Pull structural hints out of a selector string.

    Returns a mapping with ``id``, ``classes``, ``attributes``, ``test_id``
    and ``expected_text`` keys; missing hints are None or empty.
    """
    s = selector.strip()
    dialect = infer_dialect(s)
    hints: Dict[str, Any] = {
        "id": None,
        "classes": [],
        "attributes": {},
        "test_id": None,
        "expected_text": None,
    }

    if dialect == SelectorDialect.XPATH:
        for name, value in re.findall(r"@([\w-]+)\s*=\s*['\"]([^'\"]*)['\"]", s):
            hints["attributes"][name] = value
        hints["id"] = hints["attributes"].get("id")
        if "class" in hints["attributes"]:
            hints["classes"] = hints["attributes"]["class"].split()
        text = re.search(r"(?:contains\(\s*(?:text\(\)|\.)\s*,|text\(\)\s*=)\s*['\"]([^'\"]+)['\"]", s)
        if text:
            hints["expected_text"] = text.group(1)
    elif dialect == SelectorDialect.CSS:
        css = s[len("css="):] if s.startswith("css=") else s
        no_attrs = re.sub(r"\[[^\]]*\]", "", css)
        no_attrs = re.sub(r":has-text\([^)]*\)", "", no_attrs)
        id_match = re.search(r"#([\w-]+)", no_attrs)
        if id_match:
            hints["id"] = id_match.group(1)
        hints["classes"] = re.findall(r"\.([\w-]+)", no_attrs)
        for name, value in re.findall(r"\[\s*([\w-]+)\s*[~|^$*]?=\s*['\"]?([^'\"\]]*)['\"]?\s*\]", css):
            hints["attributes"][name] = value
        text = re.search(r":has-text\(\s*['\"](.+?)['\"]\s*\)", css)
        if text:
            hints["expected_text"] = text.group(1)
    elif dialect == SelectorDialect.TEXT:
        hints["expected_text"], _ = _strip_quotes(s[len("text="):])
    elif dialect == SelectorDialect.ROLE:
        parts = parse_role_selector(s)
        if parts:
            hints["attributes"]["role"] = parts[0]
            if parts[1]:
                hints["expected_text"] = parts[1]
    elif dialect == SelectorDialect.LABEL:
        hints["attributes"]["aria-label"], _ = _strip_quotes(s[len("label="):])
    elif dialect == SelectorDialect.PLACEHOLDER:
        hints["attributes"]["placeholder"], _ = _strip_quotes(s[len("placeholder="):])
    elif dialect == SelectorDialect.TEST_ID:
        hints["test_id"], _ = _strip_quotes(s.split("=", 1)[1])

    if hints["test_id"] is None and "data-testid" in hints["attributes"]:
        hints["test_id"] = hints["attributes"]["data-testid"]

    return hints
