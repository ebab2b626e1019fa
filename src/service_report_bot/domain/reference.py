from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel


class Customer(BaseModel):
    id: str
    name: str
    region_code: Optional[str] = None

    @property
    def display_label(self) -> str:
        return f"{self.name} ({self.region_code or 'N/A'})"

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Customer":
        region = raw.get("region")
        region_code = region.get("code") if isinstance(region, dict) else None
        return cls(id=str(raw.get("_id") or raw.get("id")), name=raw.get("name") or "", region_code=region_code)


class Spare(BaseModel):
    id: str
    name: str
    code: Optional[str] = None

    @property
    def display_label(self) -> str:
        return f"{self.name} ({self.code})"

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Spare":
        return cls(id=str(raw.get("_id") or raw.get("id")), name=raw.get("name") or "", code=raw.get("code"))
