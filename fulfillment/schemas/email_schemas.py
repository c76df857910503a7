from pydantic import BaseModel
from typing import Any, Dict, Optional


class EmailSendRequest(BaseModel):
    type: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
