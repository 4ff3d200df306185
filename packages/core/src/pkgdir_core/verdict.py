"""Review rubric, prompt construction and verdict parsing.

The model is asked for a fixed line grammar rather than free prose or JSON:

    SUMMARY: <one line>
    CRITERION <n>: PASS - <notes>
    CRITERION <n>: FAIL - <notes>
    SUGGESTIONS: <one line>            (optional)

Criteria are identified by their rubric number, never by the name the model
echoes back, so a paraphrased name cannot shift a verdict. Lines without a
marker (preamble, blank lines, code fences) are ignored; a line that carries a
marker but breaks the grammar fails the whole parse. There is no fallback
verdict: anything short of a complete, well-formed checklist is a ParseError.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from pkgdir_core.errors import ParseError
from pkgdir_store.models import ReviewCriterion


@dataclass(frozen=True)
class Criterion:
    name: str
    check: str
    critical: bool


RUBRIC: tuple[Criterion, ...] = (
    Criterion(
        "Has convex.config.ts with defineComponent()",
        "Check for convex.config.ts with a defineComponent() export",
        critical=True,
    ),
    Criterion(
        "Has component functions",
        "Check for TypeScript files with queries, mutations, or actions in the component directory",
        critical=True,
    ),
    Criterion(
        "Functions use new syntax",
        "Check for query({, mutation({, action({ with args and handler",
        critical=True,
    ),
    Criterion(
        "All functions have returns: validator",
        "Check that every function definition declares a returns validator",
        critical=True,
    ),
    Criterion(
        "Uses v.null() for void returns",
        "Functions returning nothing use v.null(), not undefined",
        critical=True,
    ),
    Criterion(
        "Indexes follow naming convention",
        "If a schema exists, index names match the by_field1_and_field2 pattern",
        critical=False,
    ),
    Criterion(
        "Uses withIndex() not filter()",
        "Queries use indexes instead of filter",
        critical=False,
    ),
    Criterion(
        "Internal functions use internal*",
        "Sensitive functions use internalQuery, internalMutation, internalAction",
        critical=False,
    ),
    Criterion(
        "Has TypeScript with proper types",
        'Uses Id<"table"> types and proper validators',
        critical=False,
    ),
    Criterion(
        "Uses token-based authorization (when applicable)",
        "If the component needs auth, methods issue and require tokens; "
        "components without auth needs pass with a note saying so",
        critical=False,
    ),
)

CRITICAL_NAMES = frozenset(c.name for c in RUBRIC if c.critical)

DEFAULT_GUIDELINES = """You are reviewing a Convex component package against the official Convex component authoring guidelines.

OFFICIAL DOCUMENTATION REFERENCES:
- Authoring Components: https://docs.convex.dev/components/authoring
- Understanding Components: https://docs.convex.dev/components/understanding
- Function Syntax: https://docs.convex.dev/functions
- Validation: https://docs.convex.dev/functions/validation
- Best Practices: https://docs.convex.dev/understanding/best-practices

KEY REQUIREMENTS:
1. Components must have convex.config.ts with a defineComponent() export.
2. Functions use the object syntax: query({ args: {}, returns: v.null(), handler: async (ctx, args) => {} }).
3. Every function has an explicit returns validator; functions that return nothing use v.null().
4. Internal functions use internalQuery, internalMutation, internalAction.
5. Indexes are named by_field1_and_field2.
6. Components that need authorization use a token-based pattern. Not all components need it."""

_LINE_PREFIX_RE = re.compile(r"^[\s>*\-]*")
_MARKER_RE = re.compile(r"^(CRITERION\s*\d|SUMMARY\s*:|SUGGESTIONS\s*:)", re.IGNORECASE)
_CRITERION_RE = re.compile(r"^CRITERION\s+(\d+)\s*:\s*(PASS|FAIL)\b\s*(?:[-:\u2013\u2014]\s*(.*))?$")
_SUMMARY_RE = re.compile(r"^SUMMARY\s*:\s*(\S.*)$")
_SUGGESTIONS_RE = re.compile(r"^SUGGESTIONS\s*:\s*(.*)$")


@dataclass
class Verdict:
    summary: str
    criteria: list[ReviewCriterion] = field(default_factory=list)
    status: str = "failed"  # "passed" | "failed" | "partial"


def derive_status(criteria: list[ReviewCriterion], critical_names: frozenset[str] = CRITICAL_NAMES) -> str:
    """Overall verdict for a checklist: any critical failure fails, all passing passes."""
    if any(not c.passed and c.name in critical_names for c in criteria):
        return "failed"
    if all(c.passed for c in criteria):
        return "passed"
    return "partial"


def build_review_prompt(
    package_name: str,
    version: str,
    files: list,
    guidelines: str | None = None,
    rubric: tuple[Criterion, ...] = RUBRIC,
) -> str:
    """Build the review prompt for one package.

    ``guidelines`` replaces the built-in preamble only; the output format
    section is always appended so a custom prompt cannot break the grammar
    the parser relies on.
    """
    criteria_list = "\n".join(
        f"{i}. {c.name}: {c.check}{' (CRITICAL)' if c.critical else ''}" for i, c in enumerate(rubric, 1)
    )
    sources = "\n\n".join(f"File: {f.path}\n```typescript\n{f.content}\n```" for f in files)
    return f"""{guidelines or DEFAULT_GUIDELINES}

PACKAGE: {package_name}
VERSION: {version}

CRITERIA TO CHECK:
{criteria_list}

SOURCE CODE:
{sources}

### Output Format:
Respond with plain text lines in exactly this format, one line each:

SUMMARY: <2-3 sentences on component quality and compliance, on a single line>
CRITERION 1: PASS - <brief note>
CRITERION 2: FAIL - <brief note>
...
CRITERION {len(rubric)}: PASS - <brief note>
SUGGESTIONS: <improvement suggestions referencing the documentation, on a single line>

Rules:
- Emit exactly one CRITERION line for every number from 1 to {len(rubric)}.
- Use only the words PASS or FAIL after the colon.
- Do not wrap the answer in code fences or add any other line starting with SUMMARY, CRITERION or SUGGESTIONS."""


def parse_verdict(raw: str, rubric: tuple[Criterion, ...] = RUBRIC) -> Verdict:
    """Parse model output into a Verdict, raising ParseError on any deviation."""
    if not raw or not raw.strip():
        raise ParseError("Model returned an empty response")

    summary: str | None = None
    suggestions: str | None = None
    results: dict[int, tuple[bool, str]] = {}

    for lineno, line in enumerate(raw.splitlines(), 1):
        text = _LINE_PREFIX_RE.sub("", line).replace("**", "").strip()
        marker = _MARKER_RE.match(text)
        if not marker:
            continue
        upper = marker.group(1).upper()

        if upper.startswith("CRITERION"):
            match = _CRITERION_RE.match(text)
            if not match:
                raise ParseError(f"Malformed criterion line {lineno}: {line.strip()!r}")
            number = int(match.group(1))
            if not 1 <= number <= len(rubric):
                raise ParseError(f"Unknown criterion number {number} on line {lineno}")
            if number in results:
                raise ParseError(f"Criterion {number} reported more than once")
            results[number] = (match.group(2) == "PASS", (match.group(3) or "").strip())
        elif upper.startswith("SUMMARY"):
            match = _SUMMARY_RE.match(text)
            if not match:
                raise ParseError(f"Malformed summary line {lineno}: {line.strip()!r}")
            if summary is not None:
                raise ParseError("Summary reported more than once")
            summary = match.group(1).strip()
        elif upper.startswith("SUGGESTIONS"):
            match = _SUGGESTIONS_RE.match(text)
            if not match:
                raise ParseError(f"Malformed suggestions line {lineno}: {line.strip()!r}")
            suggestions = match.group(1).strip() or None

    if not results:
        raise ParseError("No criteria found in model output")
    missing = [n for n in range(1, len(rubric) + 1) if n not in results]
    if missing:
        raise ParseError(f"Missing criteria: {', '.join(str(n) for n in missing)}")
    if summary is None:
        raise ParseError("No summary found in model output")

    criteria = [
        ReviewCriterion(name=c.name, passed=results[i][0], notes=results[i][1]) for i, c in enumerate(rubric, 1)
    ]
    if suggestions:
        summary = f"{summary}\n\nSuggestions: {suggestions}"
    critical_names = frozenset(c.name for c in rubric if c.critical)
    return Verdict(summary=summary, criteria=criteria, status=derive_status(criteria, critical_names))
