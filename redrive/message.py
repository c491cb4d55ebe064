from typing import Dict, NamedTuple, Any, Optional


class Message(NamedTuple):
    id: str
    body: str
    attributes: Dict[str, Dict[str, Any]]
    receipt_handle: str
    system_attributes: Optional[Dict[str, str]] = None


class Sent(NamedTuple):
    new_id: str


class Failed(NamedTuple):
    reason: str
