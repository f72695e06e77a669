"""Antlers template linter.

Antlers is a tag-based template language using ``{{ ... }}`` delimiters:

    {{ title | upper }}                      field reference with modifiers
    {{ if featured }}...{{ /if }}            conditional
    {{ collection:blog limit="3" }}...{{ /collection:blog }}
    {{ related_entries }}...{{ /related_entries }}

``lint_template`` scans a template line by line, classifies every tag,
checks tag names against the supplied blueprint fields and the variables
available in the rendering context, and returns findings as data. Linting
never raises for template content; malformed templates produce errors in
the report.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

TAG_PATTERN = re.compile(r"\{\{\s*([^{}]*?)\s*\}\}")
OPEN_DELIMITER_PATTERN = re.compile(r"\{\{")
QUOTED_PARAM_PATTERN = re.compile(r"(\w+)=([\"'])([^\"']*)\2")
UNQUOTED_PARAM_PATTERN = re.compile(r"(\w+)=([^\s\"']+)")
IMG_PATTERN = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
ALT_PATTERN = re.compile(r"\balt\s*=", re.IGNORECASE)
URL_PATTERN = re.compile(r"https?://[^\s\"'<>]+")

CONDITIONAL_KEYWORDS = frozenset({"if", "unless", "elseif", "else", "endif", "endunless"})
LOOP_KEYWORDS = frozenset({"foreach", "endforeach"})
BLOCK_CLOSERS = {"endif": "if", "endunless": "unless", "endforeach": "foreach"}

GLOBAL_VARIABLES = frozenset({"site", "config", "env", "current_date", "now"})

CONTEXT_GLOBALS = frozenset(
    {
        "site", "config", "env", "current_date", "now", "today", "yesterday", "tomorrow",
        "csrf_token", "csrf_field", "get", "post", "get_post", "old", "errors",
        "user", "logged_in", "logged_out", "is_logged_in", "is_logged_out",
        "segment_1", "segment_2", "segment_3", "last_segment", "current_url", "current_uri",
        "homepage", "is_homepage", "locale", "locales", "site_locale",
    }
)

CONTEXT_VARIABLES: Mapping[str, frozenset] = {
    "entry": frozenset(
        {
            "id", "slug", "url", "permalink", "title", "collection", "collection_handle",
            "published", "status", "date", "last_modified", "created_at", "updated_at",
            "author", "author_id", "edit_url", "api_url", "is_entry", "blueprint",
            "locale", "localized_slug", "parent", "children", "has_children",
            "is_root", "depth", "order", "mount", "is_page",
        }
    ),
    "collection": frozenset(
        {
            "handle", "title", "entries", "count", "url", "api_url",
            "edit_url", "create_url", "blueprint", "mount", "route",
        }
    ),
    "taxonomy": frozenset(
        {
            "handle", "title", "slug", "url", "permalink", "entries", "count",
            "api_url", "edit_url", "blueprint", "collection", "collections",
            "id", "is_term", "locale", "localized_slug",
        }
    ),
    "general": frozenset(),
}

VALID_NAMESPACES = (
    "collection", "taxonomy", "nav", "form", "glide", "partial",
    "section", "yield", "site", "config", "env",
)
BLOCK_NAMESPACES = frozenset({"collection", "taxonomy", "nav"})
GLIDE_PARAMS = frozenset({"width", "height", "quality", "fit"})

KNOWN_MODIFIERS = frozenset(
    {
        "upper", "lower", "title", "sentence", "slug", "studly", "camel",
        "length", "word_count", "read_time", "strip_tags", "markdown",
        "textile", "smartypants", "widont", "format", "relative",
        "iso_format", "modify", "add", "subtract", "multiply", "divide",
        "round", "ceil", "floor", "abs", "sort", "reverse", "shuffle",
        "limit", "offset", "unique", "pluck", "where", "where_not",
        "group_by", "collapse", "flatten", "contains", "starts_with",
        "ends_with", "matches", "split", "join", "replace", "regex_replace",
    }
)
ASSET_MODIFIERS = frozenset({"glide", "resize", "crop"})
DATE_FORMAT_MODIFIERS = frozenset({"format", "iso_format", "relative"})

RELATIONSHIP_TYPES = frozenset({"entries", "taxonomy"})
COMPLEX_TYPES = frozenset({"bard", "replicator"})

COMMON_PATTERNS = {
    "{{ if field }}...{{ /if }}": "Conditional display",
    "{{ entries }}{{ title }}{{ /entries }}": "Loop through entries",
    "{{ field | limit:3 }}": "Using modifiers",
    '{{ glide:image width="300" }}': "Image manipulation",
}


class LintContext(str, Enum):
    ENTRY = "entry"
    COLLECTION = "collection"
    TAXONOMY = "taxonomy"
    GENERAL = "general"


class TagType(str, Enum):
    GLOBAL_VARIABLE = "global_variable"
    BLUEPRINT_FIELD = "blueprint_field"
    CONTEXT_VARIABLE = "context_variable"
    NAMESPACED = "namespaced_tag"
    CONDITIONAL = "conditional"
    LOOP = "loop"
    COMMENT = "comment"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FieldSpec:
    """Blueprint field as seen by the linter."""

    type: str = "text"
    required: bool = False

    @classmethod
    def coerce(cls, value: Any) -> "FieldSpec":
        if isinstance(value, FieldSpec):
            return value
        if isinstance(value, str):
            return cls(type=value or "text")
        if isinstance(value, Mapping):
            config = value.get("field", value)
            if not isinstance(config, Mapping):
                config = {}
            return cls(
                type=str(config.get("type") or "text"),
                required=bool(config.get("required", False)),
            )
        return cls()


def normalize_fields(fields: Union[Mapping[str, Any], Iterable[Any], None]) -> Dict[str, FieldSpec]:
    """Accept ``{handle: spec}`` or a list of ``{"handle": ..., "type": ...}`` items."""
    if not fields:
        return {}
    if isinstance(fields, Mapping):
        return {str(name): FieldSpec.coerce(spec) for name, spec in fields.items()}
    normalized: Dict[str, FieldSpec] = {}
    for item in fields:
        if isinstance(item, Mapping) and item.get("handle"):
            normalized[str(item["handle"])] = FieldSpec.coerce(item)
        elif isinstance(item, str):
            normalized[item] = FieldSpec()
    return normalized


@dataclass
class Tag:
    type: TagType
    name: str
    line: int
    column: int
    raw: str
    namespace: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    modifiers: List[str] = field(default_factory=list)
    is_closing: bool = False
    condition: Optional[str] = None

    @property
    def modifier_names(self) -> List[str]:
        return [modifier.split(":", 1)[0].strip() for modifier in self.modifiers]

    @property
    def block_key(self) -> str:
        if self.namespace:
            return f"{self.namespace}:{self.name}"
        return BLOCK_CLOSERS.get(self.name, self.name)


@dataclass(frozen=True)
class Finding:
    severity: str
    code: str
    message: str
    line: Optional[int] = None
    column: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "line": self.line,
            "column": self.column,
            "severity": self.severity,
        }


@dataclass
class LintReport:
    errors: List[Finding] = field(default_factory=list)
    warnings: List[Finding] = field(default_factory=list)
    suggestions: List[Dict[str, Any]] = field(default_factory=list)
    total_tags: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "total_tags": self.total_tags,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
        }

    def codes(self, severity: Optional[str] = None) -> List[str]:
        findings = self.errors + self.warnings
        return [f.code for f in findings if severity is None or f.severity == severity]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "errors": [f.to_dict() for f in self.errors],
            "warnings": [f.to_dict() for f in self.warnings],
            "suggestions": self.suggestions,
            "stats": self.stats,
        }


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]


def similar_names(needle: str, candidates: Iterable[str], *, max_distance: int = 2, limit: int = 3) -> List[str]:
    """Candidates within ``max_distance`` edits of ``needle`` (case-insensitive)."""
    lowered = needle.lower()
    matches = [name for name in candidates if levenshtein(lowered, name.lower()) <= max_distance]
    return matches[:limit]


def parse_parameters(text: str) -> Dict[str, Any]:
    """Parse ``key="value"``, ``key=value`` and bare-flag parameters.

    Quoted values win over an unquoted token with the same key. Words
    without ``=`` become ``True`` flags.
    """
    params: Dict[str, Any] = {}
    text = text.strip()
    if not text:
        return params

    for match in QUOTED_PARAM_PATTERN.finditer(text):
        params[match.group(1)] = match.group(3)
    remainder = QUOTED_PARAM_PATTERN.sub(" ", text)

    for match in UNQUOTED_PARAM_PATTERN.finditer(remainder):
        params.setdefault(match.group(1), match.group(2))
    remainder = UNQUOTED_PARAM_PATTERN.sub(" ", remainder)

    for word in remainder.split():
        if "=" not in word:
            params.setdefault(word, True)
    return params


class TemplateLinter:
    """Single-use linter holding the per-call state."""

    def __init__(
        self,
        fields: Optional[Mapping[str, Any]] = None,
        *,
        context: Union[LintContext, str] = LintContext.ENTRY,
        strict_mode: bool = False,
    ):
        self.fields = normalize_fields(fields)
        try:
            self.context = LintContext(context)
        except ValueError:
            self.context = LintContext.GENERAL
        self.strict_mode = strict_mode
        self.report = LintReport()
        self._open_blocks: List[Tag] = []

    # -- classification -----------------------------------------------------

    def is_context_variable(self, name: str) -> bool:
        return name in CONTEXT_GLOBALS or name in CONTEXT_VARIABLES[self.context.value]

    def classify_name(self, name: str) -> TagType:
        if name in CONDITIONAL_KEYWORDS:
            return TagType.CONDITIONAL
        if name in LOOP_KEYWORDS:
            return TagType.LOOP
        root = name.split(".", 1)[0]
        if root in GLOBAL_VARIABLES:
            return TagType.GLOBAL_VARIABLE
        if root in self.fields:
            return TagType.BLUEPRINT_FIELD
        if self.is_context_variable(root):
            return TagType.CONTEXT_VARIABLE
        return TagType.UNKNOWN

    def parse_tag(self, content: str, line: int, column: int) -> Tag:
        raw = f"{{{{ {content} }}}}"
        if content.startswith("#"):
            return Tag(TagType.COMMENT, "", line, column, raw)

        is_closing = content.startswith("/")
        if is_closing:
            content = content[1:].strip()

        segments = content.split("|")
        body = segments[0].strip()
        modifiers = [segment.strip() for segment in segments[1:] if segment.strip()]

        colon = body.find(":")
        space = body.find(" ")
        if colon != -1 and (space == -1 or colon < space):
            namespace, rest = body.split(":", 1)
            name, _, param_text = rest.partition(" ")
            return Tag(
                TagType.NAMESPACED,
                name.strip(),
                line,
                column,
                raw,
                namespace=namespace.strip(),
                params=parse_parameters(param_text),
                modifiers=modifiers,
                is_closing=is_closing,
            )

        if space != -1:
            name, _, remainder = body.partition(" ")
            remainder = remainder.strip()
            tag_type = self.classify_name(name)
            tag = Tag(tag_type, name, line, column, raw, modifiers=modifiers, is_closing=is_closing)
            if tag_type is TagType.CONDITIONAL:
                tag.condition = remainder or None
            elif tag_type is TagType.LOOP:
                tag.condition = remainder or None
                tag.params = parse_parameters(remainder)
            else:
                tag.params = parse_parameters(remainder)
            return tag

        return Tag(
            self.classify_name(body),
            body,
            line,
            column,
            raw,
            modifiers=modifiers,
            is_closing=is_closing,
        )

    # -- findings -----------------------------------------------------------

    def error(self, code: str, message: str, line: Optional[int] = None, column: Optional[int] = None) -> None:
        self.report.errors.append(Finding("error", code, message, line, column))

    def warning(self, code: str, message: str, line: Optional[int] = None, column: Optional[int] = None) -> None:
        self.report.warnings.append(Finding("warning", code, message, line, column))

    # -- per-tag validation ---------------------------------------------------

    def validate_tag(self, tag: Tag) -> None:
        if tag.is_closing or tag.type is TagType.COMMENT:
            return

        if tag.type is TagType.BLUEPRINT_FIELD:
            self._validate_blueprint_field(tag)
        elif tag.type is TagType.NAMESPACED:
            self._validate_namespaced(tag)
        elif tag.type is TagType.CONDITIONAL:
            self._validate_conditional(tag)
        elif tag.type is TagType.LOOP:
            self._validate_loop(tag)
        elif tag.type is TagType.UNKNOWN:
            self._validate_unknown(tag)

        if self.strict_mode:
            for modifier in tag.modifier_names:
                if modifier not in KNOWN_MODIFIERS:
                    self.warning(
                        "unknown_modifier",
                        f"Unknown modifier '{modifier}'. Check spelling or documentation",
                        tag.line,
                        tag.column,
                    )

    def _field_for(self, tag: Tag) -> Optional[FieldSpec]:
        if "." in tag.name:
            return None
        return self.fields.get(tag.name)

    def _validate_blueprint_field(self, tag: Tag) -> None:
        spec = self._field_for(tag)
        if spec is None:
            return

        if spec.required and self.strict_mode:
            self.warning(
                "required_field_usage",
                f"Field '{tag.name}' is required - ensure it has a value",
                tag.line,
                tag.column,
            )

        if spec.type == "assets":
            invalid = [m for m in tag.modifier_names if m not in ASSET_MODIFIERS]
            if invalid and self.strict_mode:
                self.warning(
                    "invalid_asset_modifier",
                    f"Field '{tag.name}' is an asset field. Consider using glide, resize, or crop modifiers",
                    tag.line,
                    tag.column,
                )
        elif spec.type == "date":
            has_format = "format" in tag.params or any(
                m in DATE_FORMAT_MODIFIERS for m in tag.modifier_names
            )
            if not has_format and self.strict_mode:
                self.warning(
                    "missing_date_format",
                    f"Date field '{tag.name}' should specify a format parameter",
                    tag.line,
                    tag.column,
                )
        elif spec.type in COMPLEX_TYPES and self.strict_mode:
            self.warning(
                "complex_field_usage",
                f"Complex field '{tag.name}' may require conditional logic for sets",
                tag.line,
                tag.column,
            )

    def _validate_namespaced(self, tag: Tag) -> None:
        if tag.namespace not in VALID_NAMESPACES:
            self.error(
                "unknown_namespace",
                f"Unknown tag namespace '{tag.namespace}'. Valid namespaces: {', '.join(VALID_NAMESPACES)}",
                tag.line,
                tag.column,
            )
            return

        if tag.namespace == "collection" and not tag.params:
            self.warning(
                "collection_without_params",
                f"Collection tag '{tag.name}' might benefit from parameters like limit or sort",
                tag.line,
                tag.column,
            )
        elif tag.namespace == "glide" and self.strict_mode and not GLIDE_PARAMS.intersection(tag.params):
            self.warning(
                "glide_without_params",
                "Glide tag should specify dimensions or quality parameters",
                tag.line,
                tag.column,
            )

    def _validate_conditional(self, tag: Tag) -> None:
        if tag.name == "if" and not tag.condition and not tag.params:
            self.error(
                "empty_conditional",
                "Conditional 'if' statements require a condition",
                tag.line,
                tag.column,
            )
            return

        condition = (tag.condition or "").strip()
        is_simple_check = condition and not any(ch in condition for ch in " =!")
        if is_simple_check and self.fields:
            root = condition.split(".", 1)[0]
            if root not in self.fields and root not in GLOBAL_VARIABLES and not self.is_context_variable(root):
                self.warning(
                    "unknown_condition_field",
                    f"Field '{condition}' used in condition but not found in blueprint",
                    tag.line,
                    tag.column,
                )

    def _validate_loop(self, tag: Tag) -> None:
        if tag.name == "foreach" and not tag.params:
            self.error(
                "empty_loop",
                "Foreach loops require a variable to iterate over",
                tag.line,
                tag.column,
            )

    def _validate_unknown(self, tag: Tag) -> None:
        if not tag.name:
            self.error("empty_tag", "Empty Antlers tag", tag.line, tag.column)
            return
        message = f"Unknown field or tag '{tag.name}'"
        suggestions = similar_names(tag.name, self.fields)
        if suggestions:
            message += ". Did you mean: " + ", ".join(suggestions) + "?"
        self.error("unknown_field", message, tag.line, tag.column)

    # -- block tracking -------------------------------------------------------

    def _opens_block(self, tag: Tag) -> bool:
        if tag.is_closing:
            return False
        if tag.type is TagType.CONDITIONAL:
            return tag.name in ("if", "unless")
        if tag.type is TagType.LOOP:
            return tag.name == "foreach"
        if tag.type is TagType.NAMESPACED:
            return tag.namespace in BLOCK_NAMESPACES
        if tag.type is TagType.BLUEPRINT_FIELD:
            spec = self._field_for(tag)
            return spec is not None and spec.type in RELATIONSHIP_TYPES | COMPLEX_TYPES
        return False

    def _closes_block(self, tag: Tag) -> bool:
        return tag.is_closing or tag.name in BLOCK_CLOSERS

    def track_block(self, tag: Tag) -> None:
        if self._opens_block(tag):
            self._open_blocks.append(tag)
            return
        if not self._closes_block(tag):
            return

        key = tag.block_key
        for index in range(len(self._open_blocks) - 1, -1, -1):
            candidate = self._open_blocks[index]
            if candidate.block_key == key or (not tag.namespace and candidate.namespace == key):
                del self._open_blocks[index]
                return

    def report_open_blocks(self) -> None:
        for tag in self._open_blocks:
            spec = self._field_for(tag) if tag.type is TagType.BLUEPRINT_FIELD else None
            if spec is not None and spec.type in RELATIONSHIP_TYPES:
                self.error(
                    "missing_closing_tag",
                    f"Relationship field '{tag.name}' requires a closing tag: {{{{ /{tag.name} }}}}",
                    tag.line,
                    tag.column,
                )
            else:
                self.error(
                    "unclosed_tag",
                    f"Unclosed tag '{tag.block_key}' - missing closing tag",
                    tag.line,
                    tag.column,
                )
        self._open_blocks = []

    # -- document-level checks ----------------------------------------------

    def check_line(self, line: str, line_number: int) -> None:
        # Every opening delimiter must start a complete tag on the same line.
        tag_starts = {match.start() for match in TAG_PATTERN.finditer(line)}
        for opening in OPEN_DELIMITER_PATTERN.finditer(line):
            if opening.start() not in tag_starts:
                self.error(
                    "unclosed_tag",
                    "Unclosed Antlers tag detected - missing closing }}",
                    line_number,
                    opening.start() + 1,
                )

        if not self.strict_mode:
            return

        for image in IMG_PATTERN.finditer(line):
            if not ALT_PATTERN.search(image.group(0)):
                self.warning(
                    "missing_alt_text",
                    "Images should have alt text for accessibility",
                    line_number,
                    image.start() + 1,
                )
        for url in URL_PATTERN.finditer(line):
            self.warning(
                "hardcoded_url",
                "Consider using relative URLs or site configuration instead of hardcoded URLs",
                line_number,
                url.start() + 1,
            )

    def build_suggestions(self) -> List[Dict[str, Any]]:
        suggestions: List[Dict[str, Any]] = []
        if self.fields:
            suggestions.append(
                {
                    "type": "available_fields",
                    "message": "Available fields in this blueprint",
                    "fields": list(self.fields),
                }
            )
        suggestions.append(
            {
                "type": "common_patterns",
                "message": "Common Antlers patterns",
                "patterns": dict(COMMON_PATTERNS),
            }
        )
        return suggestions

    # -- entry point ----------------------------------------------------------

    def lint(self, template: str) -> LintReport:
        for line_number, line in enumerate(template.split("\n"), start=1):
            self.check_line(line, line_number)
            for match in TAG_PATTERN.finditer(line):
                tag = self.parse_tag(match.group(1).strip(), line_number, match.start() + 1)
                self.report.total_tags += 1
                self.validate_tag(tag)
                self.track_block(tag)

        self.report_open_blocks()
        self.report.suggestions = self.build_suggestions()
        return self.report


def lint_template(
    template: str,
    fields: Optional[Mapping[str, Any]] = None,
    *,
    context: Union[LintContext, str] = LintContext.ENTRY,
    strict_mode: bool = False,
) -> LintReport:
    """Lint an Antlers template.

    Args:
        template: Template source
        fields: Blueprint fields, ``{handle: type | {"type": ..., "required": ...}}``
        context: Rendering context that decides which variables exist
        strict_mode: Enable style and best-practice warnings

    Returns:
        LintReport with errors, warnings, suggestions and stats
    """
    return TemplateLinter(fields, context=context, strict_mode=strict_mode).lint(template)
