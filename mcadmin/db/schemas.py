from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class KvItem(BaseModel):
    key: str
    value: Any = None
    level: Optional[int] = None
    row: Dict[str, Any] = {}


class KvList(BaseModel):
    model: str
    kv: str
    items: List[KvItem]


class RecordPage(BaseModel):
    items: List[Dict[str, Any]]
    total: Optional[int] = None
    page: int
    page_size: int


class WriteResult(BaseModel):
    """Envelope understood by the admin edit dialog (``code`` 0 is success)."""

    code: int = 0
    msg: str = "ok"
    id: Any = None
    affected: Optional[int] = None
