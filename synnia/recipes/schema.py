# synnia/recipes/schema.py
"""
Recipe data structures.

A manifest (the parsed YAML document) is resolved into a RecipeDefinition:
a normalized input schema, the executor configuration, the optional output
node template, and the executor callable built from that configuration.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

FIELD_TYPES = ("string", "number", "boolean", "object", "array")

# Keys of a manifest field that are folded into ``rules``
RULE_KEYS = ("required", "placeholder", "min", "max", "step")


@dataclass
class FieldDefinition:
    """
    One input field of a recipe.

    Attributes:
        key: Field identifier, also the target handle for connections
        label: Display label
        type: string, number, boolean, object or array
        widget: Preferred editor ("select", "textarea", ...)
        default: Value used when neither the node nor a connection supplies one
        required: Must be present and non-empty before execution
        options: Choices for select widgets
        connection: {"input": bool, "output": bool}, or False to disable
        rules: Extra constraints (requiredKeys, min, max, ...)
        schema: Nested fields for object types
    """
    key: str
    label: Optional[str] = None
    type: str = "string"
    widget: Optional[str] = None
    default: Any = None
    required: bool = False
    disabled: bool = False
    hidden: bool = False
    options: Optional[List[Any]] = None
    connection: Any = None
    rules: Dict[str, Any] = field(default_factory=dict)
    schema: Optional[List["FieldDefinition"]] = None

    @property
    def display_name(self) -> str:
        return self.label or self.key

    @property
    def required_keys(self) -> List[str]:
        return list(self.rules.get("requiredKeys") or self.rules.get("required_keys") or [])

    @classmethod
    def from_manifest(cls, raw: Dict[str, Any]) -> "FieldDefinition":
        """Normalize a manifest field (``select`` becomes a string with a select widget)."""
        if "key" not in raw:
            raise ValueError(f"Field is missing 'key': {raw}")
        field_type = raw.get("type", "string")
        widget = raw.get("widget")
        if field_type == "select":
            field_type, widget = "string", "select"

        rules = {k: raw[k] for k in RULE_KEYS if raw.get(k) is not None}
        rules.update(raw.get("rules") or {})
        nested = raw.get("schema")

        return cls(
            key=raw["key"],
            label=raw.get("label"),
            type=field_type,
            widget=widget,
            default=raw.get("default"),
            required=bool(rules.get("required", False)),
            disabled=bool(raw.get("disabled", False)),
            hidden=bool(raw.get("hidden", False)),
            options=raw.get("options"),
            connection=raw.get("connection"),
            rules=rules,
            schema=[cls.from_manifest(f) for f in nested] if nested else None,
        )

    def merged_over(self, base: "FieldDefinition") -> "FieldDefinition":
        """This field overriding ``base``; the base label survives if ours is unset."""
        merged = FieldDefinition(**{**base.__dict__, **{
            k: v for k, v in self.__dict__.items() if k != "label"
        }})
        merged.label = self.label if self.label is not None else base.label
        return merged

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "key": self.key,
            "label": self.label,
            "type": self.type,
            "widget": self.widget,
            "default": self.default,
            "required": self.required,
            "disabled": self.disabled,
            "hidden": self.hidden,
            "options": self.options,
            "connection": self.connection,
            "rules": dict(self.rules),
        }
        if self.schema:
            data["schema"] = [f.to_dict() for f in self.schema]
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class OutputConfig:
    """
    Template for nodes built from a recipe's result.

    Attributes:
        node: Node kind or alias to create (default "form")
        title: Title template ({{count}}, {{index}}, {{<field>}})
        collapsed: Initial collapsed state (None means kind default)
        config: Passed through to the created asset's config (schema, ...)
        format: json, text or markdown
    """
    node: str = "form"
    title: Optional[str] = None
    collapsed: Optional[bool] = None
    config: Dict[str, Any] = field(default_factory=dict)
    format: str = "json"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["OutputConfig"]:
        if not data:
            return None
        config = dict(data.get("config") or {})
        if data.get("schema") and "schema" not in config:
            config["schema"] = data["schema"]
        return cls(
            node=data.get("node") or "form",
            title=data.get("title"),
            collapsed=data.get("collapsed"),
            config=config,
            format=data.get("format", "json"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node": self.node,
            "title": self.title,
            "collapsed": self.collapsed,
            "config": dict(self.config),
            "format": self.format,
        }


@dataclass
class RecipeDefinition:
    """A resolved recipe ready to run."""
    id: str
    name: str
    input_schema: List[FieldDefinition]
    executor_config: Dict[str, Any]
    execute: Callable
    category: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    output: Optional[OutputConfig] = None
    output_schema: Optional[List[FieldDefinition]] = None
    manifest: Dict[str, Any] = field(default_factory=dict)
    mixins: List[str] = field(default_factory=list)
    version: int = 1

    def get_field(self, key: str) -> Optional[FieldDefinition]:
        for f in self.input_schema:
            if f.key == key:
                return f
        return None

    def defaults(self) -> Dict[str, Any]:
        return {f.key: f.default for f in self.input_schema if f.default is not None}

    def schema_dicts(self) -> List[Dict[str, Any]]:
        return [f.to_dict() for f in self.input_schema]

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category or "Other",
            "executor": self.executor_config.get("type"),
            "inputs": [f.key for f in self.input_schema],
            "version": self.version,
        }
