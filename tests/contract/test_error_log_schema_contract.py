from __future__ import annotations

import json

import jsonschema

from mileage_import.models.error_record import ErrorRecord

"""Error log JSON Lines contract: fixed keys, no extras."""

ERROR_LOG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "required": ["timestamp", "user_id", "error_type", "error_message", "context"],
    "properties": {
        "timestamp": {"type": "string", "pattern": "^[0-9]{4}-[0-9]{2}-[0-9]{2}T.*Z$"},
        "user_id": {"type": "string", "minLength": 1},
        "error_type": {"type": "string", "pattern": "^[a-z_]+$"},
        "error_message": {"type": "string"},
        "context": {"type": "object"},
    },
}


def test_daily_route_error_record_matches_schema():
    rec = ErrorRecord.create(
        "u1", "daily_route_calculation", "Google Directions API error: ZERO_RESULTS",
        {"date": "2023-01-02", "entriesCount": 4},
    )
    jsonschema.validate(json.loads(rec.to_json_line()), ERROR_LOG_SCHEMA)


def test_invalid_date_record_matches_schema():
    rec = ErrorRecord.create("u1", "invalid_date", "unparseable date: 'soon'", {"row": 3, "value": "soon"})
    jsonschema.validate(json.loads(rec.to_json_line()), ERROR_LOG_SCHEMA)
