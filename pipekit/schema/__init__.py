"""Component import schema: canonical fields, header aliases and limits."""

from typing import Dict, List, Any

# Canonical component fields in mapping order
STANDARD_HEADERS = [
    "drawing_number",
    "component_identifier",
    "component_type",
    "description",
    "size",
    "material_spec",
    "material",
    "area",
    "system",
    "test_package",
    "quantity",
    "date_welded",
    "welder_stencil",
    "test_pressure",
    "pmi_required",
    "pwht_required",
    "notes"
]

# Fields without which a row cannot be placed on a drawing
REQUIRED_FIELDS = ["drawing_number", "component_identifier"]

# Curated header synonyms seen on piping take-offs, line lists and weld logs
COLUMN_MAPPINGS = {
    "drawing_number": [
        "drawing", "drawings", "drawing no", "drawing no.", "drawing #",
        "drawing number", "drawing_number", "dwg", "dwgs", "dwg no", "dwg_no",
        "dwgno", "dwg #", "dwg number", "iso", "isometric", "iso no",
        "iso number", "sheet", "drawing id", "drawing_id"
    ],
    "component_identifier": [
        "component id", "component_id", "componentid", "comp id", "comp no",
        "tag", "tag no", "tag number", "line no", "line number", "line_no",
        "cmdty code", "commodity code", "commodity", "part no", "part number",
        "item code", "ident", "ident code", "weld id", "weld no", "weld number"
    ],
    "component_type": [
        "type", "component type", "component_type", "comp type", "item type",
        "category", "class", "commodity type"
    ],
    "description": [
        "description", "desc", "desc.", "item description", "details",
        "long description", "short description", "name"
    ],
    "size": [
        "size", "nominal size", "nps", "nb", "dia", "diameter", "pipe size",
        "bore", "nominal bore", "dn", "weld size"
    ],
    "material_spec": [
        "spec", "specification", "pipe spec", "piping spec", "line spec",
        "material spec", "spec code", "class spec", "piping class"
    ],
    "material": [
        "material", "mat", "mat.", "grade", "material grade", "base metal"
    ],
    "area": [
        "area", "plant area", "unit area", "unit", "location", "zone"
    ],
    "system": [
        "system", "pipeline system", "piping system", "process system",
        "service", "sys"
    ],
    "test_package": [
        "test package", "test_package", "test pkg", "test pack",
        "testpack", "tp", "hydro package", "test package no", "package"
    ],
    "quantity": [
        "quantity", "qty", "qty.", "count", "no off", "no. off", "pcs"
    ],
    "date_welded": [
        "date welded", "weld date", "date_welded", "welded on", "date"
    ],
    "welder_stencil": [
        "welder stencil", "welder", "welder id", "welder no", "stencil",
        "welder symbol", "operator"
    ],
    "test_pressure": [
        "test pressure", "pressure", "hydro pressure", "hydrotest pressure",
        "test psi", "psi"
    ],
    "pmi_required": [
        "pmi required", "pmi", "pmi req", "pmi reqd",
        "positive material identification"
    ],
    "pwht_required": [
        "pwht required", "pwht", "pwht req", "pwht reqd",
        "post weld heat treatment", "heat treatment"
    ],
    "notes": [
        "notes", "note", "comments", "comment", "remarks", "remark"
    ]
}

# Canonical field schemas for each import column
CANONICAL_FIELDS: List[Dict[str, Any]] = [
    {
        "id": "drawing_number",
        "label": "Drawing Number",
        "aliases": COLUMN_MAPPINGS["drawing_number"],
        "required": True,
        "expected": {"kind": "string", "max_length": 100},
        "examples": ["P-35F11", "DWG-100", "ISO-1201-A-01"],
        "description": "Isometric or general-arrangement drawing the component appears on."
    },
    {
        "id": "component_identifier",
        "label": "Component Identifier",
        "aliases": COLUMN_MAPPINGS["component_identifier"],
        "required": True,
        "expected": {"kind": "string", "max_length": 100},
        "examples": ["V-201", "GK0A1A11ZZ", "FW-0012"],
        "description": "Commodity code or tag identifying the component. The same identifier may appear several times on one drawing."
    },
    {
        "id": "component_type",
        "label": "Component Type",
        "aliases": COLUMN_MAPPINGS["component_type"],
        "required": False,
        "expected": {"kind": "string", "max_length": 60},
        "examples": ["VALVE", "Gasket", "SPOOL", "Field Weld"],
        "description": "Free-text component type, mapped to a component category and milestone template."
    },
    {
        "id": "description",
        "label": "Description",
        "aliases": COLUMN_MAPPINGS["description"],
        "required": False,
        "expected": {"kind": "string", "max_length": 500},
        "examples": ["GATE VALVE 150# RF", "SPIRAL WOUND GASKET"],
        "description": "Human-readable component description."
    },
    {
        "id": "size",
        "label": "Size",
        "aliases": COLUMN_MAPPINGS["size"],
        "required": False,
        "expected": {"kind": "size", "max_length": 40},
        "examples": ["2\"", "1-1/2", "3/4", "2X1", "DN50"],
        "description": "Nominal pipe size. Reducers are written as two sizes separated by X."
    },
    {
        "id": "material_spec",
        "label": "Material Spec",
        "aliases": COLUMN_MAPPINGS["material_spec"],
        "required": False,
        "expected": {"kind": "string", "max_length": 60},
        "examples": ["A1A", "CS150", "HC05"],
        "description": "Piping material specification / class."
    },
    {
        "id": "material",
        "label": "Material",
        "aliases": COLUMN_MAPPINGS["material"],
        "required": False,
        "expected": {"kind": "string", "max_length": 100},
        "examples": ["A105", "SS316L"],
        "description": "Material grade."
    },
    {
        "id": "area",
        "label": "Area",
        "aliases": COLUMN_MAPPINGS["area"],
        "required": False,
        "expected": {"kind": "string", "max_length": 60},
        "examples": ["100", "North Pipe Rack"],
        "description": "Plant area."
    },
    {
        "id": "system",
        "label": "System",
        "aliases": COLUMN_MAPPINGS["system"],
        "required": False,
        "expected": {"kind": "string", "max_length": 60},
        "examples": ["Cooling Water", "HP Steam"],
        "description": "Process or piping system."
    },
    {
        "id": "test_package",
        "label": "Test Package",
        "aliases": COLUMN_MAPPINGS["test_package"],
        "required": False,
        "expected": {"kind": "string", "max_length": 60},
        "examples": ["TP-001", "HT-12"],
        "description": "Hydrotest / pressure test package."
    },
    {
        "id": "quantity",
        "label": "Quantity",
        "aliases": COLUMN_MAPPINGS["quantity"],
        "required": False,
        "expected": {"kind": "integer", "min": 1, "max": 1000},
        "examples": ["1", "4"],
        "description": "Number of physical instances the row stands for. Defaults to 1."
    },
    {
        "id": "date_welded",
        "label": "Date Welded",
        "aliases": COLUMN_MAPPINGS["date_welded"],
        "required": False,
        "expected": {"kind": "date"},
        "examples": ["2025-08-12", "08/12/2025", "12-Aug-2025"],
        "description": "Calendar date a field weld was made."
    },
    {
        "id": "welder_stencil",
        "label": "Welder Stencil",
        "aliases": COLUMN_MAPPINGS["welder_stencil"],
        "required": False,
        "expected": {"kind": "string", "max_length": 20},
        "examples": ["W-12", "JD7"],
        "description": "Stencil of the welder who made a field weld."
    },
    {
        "id": "test_pressure",
        "label": "Test Pressure",
        "aliases": COLUMN_MAPPINGS["test_pressure"],
        "required": False,
        "expected": {"kind": "pressure", "min": 0},
        "examples": ["150", "150 psi", "10 bar"],
        "description": "Hydrotest pressure. Bare numbers are read as psi."
    },
    {
        "id": "pmi_required",
        "label": "PMI Required",
        "aliases": COLUMN_MAPPINGS["pmi_required"],
        "required": False,
        "expected": {"kind": "boolean"},
        "examples": ["Yes", "No", "X", "1"],
        "description": "Positive material identification required for the weld."
    },
    {
        "id": "pwht_required",
        "label": "PWHT Required",
        "aliases": COLUMN_MAPPINGS["pwht_required"],
        "required": False,
        "expected": {"kind": "boolean"},
        "examples": ["Yes", "No", "X", "1"],
        "description": "Post-weld heat treatment required for the weld."
    },
    {
        "id": "notes",
        "label": "Notes",
        "aliases": COLUMN_MAPPINGS["notes"],
        "required": False,
        "expected": {"kind": "string", "max_length": 1000},
        "examples": ["Tie-in to existing", "Shop fabricated"],
        "description": "Free-text remarks."
    }
]

# Create a lookup dictionary by field ID for easy access
FIELD_SCHEMAS: Dict[str, Dict[str, Any]] = {
    field["id"]: field for field in CANONICAL_FIELDS
}

__all__ = [
    "STANDARD_HEADERS",
    "REQUIRED_FIELDS",
    "COLUMN_MAPPINGS",
    "CANONICAL_FIELDS",
    "FIELD_SCHEMAS"
]
