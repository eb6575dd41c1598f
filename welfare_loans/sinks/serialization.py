"""Shared serialization utilities for sinks and the CLI.

Amounts are written as strings (``"858.33"``) so no precision is lost to
floats; enums become their values and dates ISO 8601 strings.
"""

import json
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from welfare_loans.models import LoanRepaymentPayment


def to_dict(obj: Any) -> dict:
    """Convert a model, event or plain dict to a JSON-ready dict."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return dataclass_to_dict(obj)
    elif isinstance(obj, dict):
        return serialize_value(obj)
    else:
        return {"value": str(obj)}


def dataclass_to_dict(obj: Any) -> dict:
    """Convert a dataclass field by field.

    Uses ``dataclasses.fields()`` + ``getattr`` rather than ``asdict()`` so
    nested models go through ``serialize_value`` too. A loan repayment also
    gets its ``payment_type``, which is a property rather than a field.
    """
    result = {f.name: serialize_value(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, LoanRepaymentPayment):
        result["payment_type"] = obj.payment_type.value
    return result


def serialize_value(value: Any) -> Any:
    """Serialize a value for JSON output."""
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, date):
        return value.isoformat()
    elif is_dataclass(value) and not isinstance(value, type):
        return dataclass_to_dict(value)
    elif isinstance(value, dict):
        return {str(serialize_value(k)): serialize_value(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


def to_json(obj: Any, pretty: bool = False) -> str:
    """Serialize a model, or a list of models, to a JSON string."""
    data = [to_dict(o) for o in obj] if isinstance(obj, list) else to_dict(obj)
    return json.dumps(data, indent=2 if pretty else None, ensure_ascii=False)
