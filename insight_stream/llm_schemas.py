from __future__ import annotations

from insight_stream.models import CHART_TYPES

CHART_CONFIG_SCHEMA: dict = {
    "type": "object",
    "additionalProperties": False,
    "required": ["type", "title", "x_axis", "y_axis"],
    "properties": {
        "type": {"type": "string", "enum": list(CHART_TYPES)},
        "title": {"type": "string", "minLength": 1},
        "x_axis": {"type": "string", "minLength": 1},
        "y_axis": {"type": "string", "minLength": 1},
        "category": {"type": ["string", "null"]},
        "additional_keys": {"type": "array", "items": {"type": "string"}},
    },
}

ANALYSIS_RESULT_SCHEMA: dict = {
    "type": "object",
    "additionalProperties": False,
    "required": ["summary", "insights", "statistics", "performance_pulse", "suggested_charts"],
    "properties": {
        "summary": {"type": "string", "minLength": 1},
        "insights": {"type": "array", "items": {"type": "string"}},
        "statistics": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["label", "value"],
                "properties": {
                    "label": {"type": "string"},
                    "value": {"type": ["string", "number"]},
                },
            },
        },
        "performance_pulse": {
            "type": "object",
            "additionalProperties": False,
            "required": ["strengths", "risks"],
            "properties": {
                "strengths": {"type": "array", "items": {"type": "string"}},
                "risks": {"type": "array", "items": {"type": "string"}},
            },
        },
        "suggested_charts": {"type": "array", "items": CHART_CONFIG_SCHEMA},
    },
}
