from __future__ import annotations

from typing import Any, Dict, Optional
from pydantic import BaseModel


class ErrorOut(BaseModel):
    error: str
    code: str
    request_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
