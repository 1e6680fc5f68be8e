"""JSON response rendering for numeric and temporal column values."""

from __future__ import annotations

import datetime
import json
import uuid
from decimal import Decimal
from typing import Any

from fastapi.responses import JSONResponse


class DecimalJSONEncoder(json.JSONEncoder):
  """JSON encoder that handles Numeric columns, dates and UUID keys."""

  def default(self, obj: Any) -> Any:
    if isinstance(obj, Decimal):
      return int(obj) if obj % 1 == 0 else float(obj)
    if isinstance(obj, datetime.datetime | datetime.date):
      return obj.isoformat()
    if isinstance(obj, uuid.UUID):
      return str(obj)
    return super().default(obj)


class DecimalJSONResponse(JSONResponse):
  """JSONResponse that renders with DecimalJSONEncoder."""

  def render(self, content: Any) -> bytes:
    return json.dumps(content, ensure_ascii=False, allow_nan=False, indent=None, separators=(",", ":"), cls=DecimalJSONEncoder).encode("utf-8")
