"""Ordered pattern substitution over rendered HTML.

Each rule is applied once over the whole text, in table order; later rules
see the output of earlier ones. Placeholder producing rules therefore come
before the rules resolving them, and specific list item rules come before the
generic one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Pattern, Sequence, Tuple

import yaml

from .errors import RuleError

ICON_NAMES = ("external_link", "checkbox_checked", "checkbox_unchecked")


@dataclass(frozen=True)
class PatternRule:
    name: str
    pattern: Pattern[str]
    replacement: str

    @classmethod
    def compile(cls, name: str, pattern: str, replacement: str, flags: int = 0) -> "PatternRule":
        try:
            compiled = re.compile(pattern, flags)
        except re.error as exc:
            raise RuleError(f"Invalid pattern for rule '{name}': {pattern!r}") from exc
        return cls(name=name, pattern=compiled, replacement=replacement)

    def apply(self, text: str) -> str:
        try:
            return self.pattern.sub(self.replacement, text)
        except (re.error, IndexError) as exc:
            raise RuleError(f"Invalid replacement for rule '{self.name}': {self.replacement!r}") from exc


def _heading_rules() -> List[Tuple[str, str, str]]:
    return [(f"heading_{n}", rf"<h{n}((?:\s[^>]*)?)>", rf'<h{n}\1 class="heading_{n}">') for n in range(1, 7)]


def _icon_rules() -> List[Tuple[str, str, str]]:
    return [
        (
            f"icon_{name}",
            re.escape(f"@@ICON:{name}@@"),
            f'<img class="icon icon_{name}" alt="" src="@@ASSET:{name}.svg@@" />',
        )
        for name in ICON_NAMES
    ]


DEFAULT_RULE_TABLE: Tuple[Tuple[str, str, str], ...] = tuple(
    _heading_rules()
    + [
        ("tag_paragraph", r"<p>(#[\w-]+(?:[ \t]+#[\w-]+)*)</p>", r'<p class="tags">\1</p>'),
        ("blockquote", r"<blockquote>", r'<blockquote class="quote">'),
        ("crossed_out_paragraph", r"<p><s>", r'<p class="crossed_out_text"><s>'),
        ("underlined_paragraph", r"<p>~(?!~)", r'<p class="underlined_text">'),
        ("crossed_out_line_ending", r"</s>\n<s>", "<br />\n"),
        ("underlined_line_ending", r"~\n~", "<br />\n"),
        (
            "underlined_paragraph_end",
            r'(<p class="underlined_text">(?:(?!</p>)[\s\S])*?)~</p>',
            r"\1</p>",
        ),
        # Never inside code: no code tag in the span, no "</code>" ahead before the next "<code".
        (
            "mark",
            r"==((?:[^=\n<]|<(?!/?code\b))+)==(?!(?:(?!<code\b)[\s\S])*</code>)",
            r"<mark>\1</mark>",
        ),
        (
            "external_link",
            r'<a href="(https?://[^"]*)"([^>]*)>([\s\S]*?)</a>',
            r'<a class="external_link" href="\1"\2>[\3]@@ICON:external_link@@</a>',
        ),
        ("code_block", r"<pre><code([^>]*)>", r'<pre class="code_block"><code\1>'),
        ("inline_code", r'(?<!<pre class="code_block">)<code>', r'<code class="inline_code">'),
        ("task_checked", r"<li>(\s*<p>)?\[[xX]\]\s*", r'<li class="task_checked">\1@@ICON:checkbox_checked@@ '),
        ("task_unchecked", r"<li>(\s*<p>)?\[ \]\s*", r'<li class="task_unchecked">\1@@ICON:checkbox_unchecked@@ '),
        ("list_item", r"<li>", r'<li class="list_item">'),
    ]
    + _icon_rules()
)


def compile_rules(table: Iterable[Sequence[Any]]) -> List[PatternRule]:
    rules: List[PatternRule] = []
    for idx, entry in enumerate(table, start=1):
        if len(entry) == 2:
            name, (pattern, replacement) = f"rule_{idx}", entry
        elif len(entry) == 3:
            name, pattern, replacement = entry
        else:
            raise RuleError(f"Rule #{idx} must be (pattern, replacement) or (name, pattern, replacement)")
        rules.append(PatternRule.compile(str(name), str(pattern), str(replacement)))
    return rules


DEFAULT_RULES: Tuple[PatternRule, ...] = tuple(compile_rules(DEFAULT_RULE_TABLE))


def load_rules(path: Path) -> List[PatternRule]:
    """Read a rule table from a YAML list of ``{pattern, replacement}`` mappings."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise RuleError(f"Unable to read rules file {path}") from exc

    if not isinstance(data, list):
        raise RuleError(f"Rules file {path} must contain a list of rules")

    rules: List[PatternRule] = []
    for idx, item in enumerate(data, start=1):
        if not isinstance(item, dict) or "pattern" not in item or "replacement" not in item:
            raise RuleError(f"Rules file {path}: entry #{idx} needs 'pattern' and 'replacement'")
        flags = 0
        if item.get("ignorecase"):
            flags |= re.IGNORECASE
        if item.get("multiline"):
            flags |= re.MULTILINE
        if item.get("dotall"):
            flags |= re.DOTALL
        name = str(item.get("name") or f"rule_{idx}")
        rules.append(PatternRule.compile(name, str(item["pattern"]), str(item["replacement"]), flags))
    return rules


def apply_rules(text: str, rules: Iterable[PatternRule]) -> str:
    for rule in rules:
        text = rule.apply(text)
    return text
