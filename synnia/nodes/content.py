# synnia/nodes/content.py
"""Content node kinds: text, image, form, and the collection kinds."""

from typing import Any, Dict, List, Optional

from ..assets import Asset, AssetKind
from ..behavior import ConnectionContext, PortValue
from ..graph import Node
from ..ports import field_value, resolve_input_value
from ..validator import SEMANTIC_HANDLES
from .base import (
    STANDARD_BEHAVIOR,
    AssetSeed,
    CreateResult,
    NodeDefinition,
    append_items,
    items_from,
    prepend_items,
)

IMAGE_SCHEMA = [
    {"key": "src", "label": "Source", "type": "string"},
    {"key": "width", "label": "Width", "type": "number"},
    {"key": "height", "label": "Height", "type": "number"},
]

DEFAULT_OPTION_SCHEMA = [
    {"key": "name", "label": "Name", "type": "string"},
    {"key": "description", "label": "Description", "type": "string"},
]


def _meta(node: Node, port_id: str) -> Dict[str, Any]:
    return {"node_id": node.id, "port_id": port_id}


# -- schema-driven connection hooks (forms and recipes) ----------------

def _schema_field(schema: List[Dict[str, Any]], key: str) -> Optional[Dict[str, Any]]:
    for f in schema:
        if f.get("key") == key:
            return f
    return None


def _accepts_input(field_def: Dict[str, Any]) -> bool:
    connection = field_def.get("connection")
    if connection is False:
        return False
    if isinstance(connection, dict):
        return connection.get("input", True) is not False
    return True


def schema_can_connect(ctx: ConnectionContext) -> Optional[str]:
    """Accept a field handle if the target schema declares a connectable field."""
    handle = ctx.edge.target_handle
    schema = ctx.target_asset.schema if ctx.target_asset else []
    if not schema:
        return None
    field_def = _schema_field(schema, handle)
    if field_def is None:
        return f"Unknown field '{handle}'"
    if not _accepts_input(field_def):
        return f"Field '{field_def.get('label') or handle}' does not accept connections"
    return None


def autofill_on_connect(ctx: ConnectionContext) -> Optional[Dict[str, Any]]:
    """Copy the incoming port value into the connected field."""
    handle = ctx.edge.target_handle
    if not handle or handle in SEMANTIC_HANDLES:
        return None
    value = resolve_input_value(ctx.source_port_value, handle)
    return {handle: value} if value is not None else None


# -- text --------------------------------------------------------------

def create_text(data: Any, schema) -> CreateResult:
    return CreateResult(asset=AssetSeed(AssetKind.TEXT, data if isinstance(data, str) else ""))


def text_resolve_output(node: Node, asset: Optional[Asset], port_id: str) -> Optional[PortValue]:
    if port_id == "output":
        return PortValue("text", asset.value if asset and asset.value else "", meta=_meta(node, port_id))
    return STANDARD_BEHAVIOR.resolve_output(node, asset, port_id)


TEXT = NodeDefinition(
    kind="text",
    title="Text",
    alias="text",
    create=create_text,
    behavior=STANDARD_BEHAVIOR.extend(resolve_output=text_resolve_output),
    default_size={"width": 250, "height": 200},
)


# -- image -------------------------------------------------------------

def create_image(data: Any, schema) -> CreateResult:
    if isinstance(data, dict):
        value = {"src": data.get("src") or data.get("url") or "",
                 "width": data.get("width"), "height": data.get("height")}
    else:
        value = {"src": data or "", "width": None, "height": None}
    return CreateResult(asset=AssetSeed(AssetKind.IMAGE, value, {"schema": IMAGE_SCHEMA}))


def image_resolve_output(node: Node, asset: Optional[Asset], port_id: str) -> Optional[PortValue]:
    if asset is None:
        return None
    if port_id in ("output", "origin"):
        return PortValue("image", asset.value, meta=_meta(node, port_id))
    return field_value(node, asset, port_id)


IMAGE = NodeDefinition(
    kind="image",
    title="Image",
    alias="image",
    create=create_image,
    behavior=STANDARD_BEHAVIOR.extend(resolve_output=image_resolve_output),
    default_size={"width": 300, "height": 300},
)


# -- form --------------------------------------------------------------

def create_form(data: Any, schema) -> CreateResult:
    value = dict(data) if isinstance(data, dict) else {}
    return CreateResult(asset=AssetSeed(AssetKind.RECORD, value, {"schema": list(schema or [])}))


def form_resolve_output(node: Node, asset: Optional[Asset], port_id: str) -> Optional[PortValue]:
    if asset is None:
        return None
    if port_id in ("output", "origin"):
        return PortValue("json", asset.value or {}, schema=asset.schema or None, meta=_meta(node, port_id))
    return field_value(node, asset, port_id)


FORM = NodeDefinition(
    kind="form",
    title="Form",
    alias="form",
    create=create_form,
    behavior=STANDARD_BEHAVIOR.extend(
        resolve_output=form_resolve_output,
        can_connect=schema_can_connect,
        on_connect=autofill_on_connect,
    ),
    default_size={"width": 250, "height": 200},
)


# -- table -------------------------------------------------------------

get_table_rows = items_from("rows")


def create_table(data: Any, schema) -> CreateResult:
    rows = list(data) if isinstance(data, list) else []
    columns = [
        {"key": f["key"], "label": f.get("label") or f["key"],
         "type": "number" if f.get("type") == "number" else "string"}
        for f in (schema or [])
    ]
    return CreateResult(
        data={"show_row_numbers": True, "allow_add_row": True, "allow_delete_row": True},
        asset=AssetSeed(AssetKind.ARRAY, rows, {"columns": columns, "schema": list(schema or [])}),
    )


def table_resolve_output(node: Node, asset: Optional[Asset], port_id: str) -> Optional[PortValue]:
    if asset is None:
        return None
    rows = get_table_rows(asset)
    if port_id in ("output", "origin"):
        return PortValue("array", rows, meta=_meta(node, port_id))
    if port_id.startswith("field:") and rows and isinstance(rows[0], dict):
        key = port_id[len("field:"):]
        if key in rows[0]:
            value = rows[0][key]
            return PortValue("json" if isinstance(value, (dict, list)) else "text", value,
                             meta=_meta(node, port_id))
    return None


TABLE = NodeDefinition(
    kind="table",
    title="Table",
    alias="table",
    is_collection=True,
    create=create_table,
    get_items=get_table_rows,
    merge_items=append_items,
    behavior=STANDARD_BEHAVIOR.extend(resolve_output=table_resolve_output),
    default_size={"width": 360, "height": 250},
)


# -- selector ----------------------------------------------------------

get_selector_options = items_from("options")


def create_selector(data: Any, schema) -> CreateResult:
    options = []
    for i, item in enumerate(data if isinstance(data, list) else []):
        if not isinstance(item, dict):
            item = {"name": str(item)}
        options.append({**item, "id": item.get("id") or f"opt-{i}"})
    return CreateResult(
        data={"selected": []},
        asset=AssetSeed(AssetKind.ARRAY, options, {
            "mode": "multi",
            "option_schema": list(schema or DEFAULT_OPTION_SCHEMA),
        }),
    )


def selector_resolve_output(node: Node, asset: Optional[Asset], port_id: str) -> Optional[PortValue]:
    if asset is None or not asset.value:
        return None
    if isinstance(asset.value, list):
        items = asset.value
        selected_ids = node.data.get("selected", [])
    else:
        items = asset.value.get("options", [])
        selected_ids = asset.value.get("selected", [])
    selected = [item for item in items if item.get("id") in selected_ids]

    if port_id == "output":
        return PortValue("array", selected, meta=_meta(node, port_id))
    if port_id == "origin":
        return PortValue("array", items, meta=_meta(node, port_id))
    if port_id.startswith("field:") and selected:
        key = port_id[len("field:"):]
        if key in selected[0]:
            value = selected[0][key]
            return PortValue("json" if isinstance(value, (dict, list)) else "text", value,
                             meta=_meta(node, port_id))
    return None


SELECTOR = NodeDefinition(
    kind="selector",
    title="Selector",
    alias="selector",
    is_collection=True,
    create=create_selector,
    get_items=get_selector_options,
    merge_items=append_items,
    behavior=STANDARD_BEHAVIOR.extend(resolve_output=selector_resolve_output),
    default_size={"width": 280, "height": 300},
)


# -- gallery -----------------------------------------------------------

get_gallery_images = items_from("images")


def normalize_gallery_item(item: Any, index: int) -> Dict[str, Any]:
    if isinstance(item, str):
        item = {"src": item}
    return {
        "id": item.get("id") or f"img-{index}",
        "src": item.get("src") or item.get("url") or "",
        "starred": bool(item.get("starred", False)),
        "caption": item.get("caption") or "",
    }


def create_gallery(data: Any, schema) -> CreateResult:
    items = data if isinstance(data, list) else []
    return CreateResult(
        data={
            "view_mode": "grid",
            "columns_per_row": min(4, len(items) or 4),
            "allow_star": True,
            "allow_delete": True,
        },
        asset=AssetSeed(AssetKind.ARRAY, [normalize_gallery_item(item, i) for i, item in enumerate(items)]),
    )


def gallery_resolve_output(node: Node, asset: Optional[Asset], port_id: str) -> Optional[PortValue]:
    if port_id == "output" and asset is not None:
        return PortValue("array", get_gallery_images(asset), meta=_meta(node, port_id))
    return STANDARD_BEHAVIOR.resolve_output(node, asset, port_id)


GALLERY = NodeDefinition(
    kind="gallery",
    title="Gallery",
    alias="gallery",
    is_collection=True,
    create=create_gallery,
    get_items=get_gallery_images,
    # newest generations first
    merge_items=prepend_items,
    behavior=STANDARD_BEHAVIOR.extend(resolve_output=gallery_resolve_output),
    default_size={"width": 320, "height": 280},
)


# -- queue -------------------------------------------------------------

get_queue_tasks = items_from("tasks")


def create_queue(data: Any, schema) -> CreateResult:
    return CreateResult(
        data={"concurrency": 1, "auto_start": False, "retry_on_error": True, "retry_count": 3},
        asset=AssetSeed(AssetKind.ARRAY, list(data) if isinstance(data, list) else []),
    )


def queue_resolve_output(node: Node, asset: Optional[Asset], port_id: str) -> Optional[PortValue]:
    if asset is None or not asset.value:
        return None
    tasks = get_queue_tasks(asset)
    if port_id == "output":
        results = [t.get("result") for t in tasks if isinstance(t, dict) and t.get("status") == "success"]
        return PortValue("array", results, meta=_meta(node, port_id))
    if port_id == "origin":
        return PortValue("array", tasks, meta=_meta(node, port_id))
    return None


QUEUE = NodeDefinition(
    kind="queue",
    title="Queue",
    category="Process",
    alias="queue",
    is_collection=True,
    create=create_queue,
    get_items=get_queue_tasks,
    merge_items=append_items,
    behavior=STANDARD_BEHAVIOR.extend(resolve_output=queue_resolve_output),
    default_size={"width": 300, "height": 280},
)


CONTENT_DEFINITIONS = [TEXT, IMAGE, FORM, TABLE, SELECTOR, GALLERY, QUEUE]
