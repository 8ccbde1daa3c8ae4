"""In-memory contact book backing the ``create_person_contact`` action."""
from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from time import time
from typing import Any, Dict, List

from chatcore.errors import ValidationError
from chatcore.sessions.models import new_id

logger = logging.getLogger("chatdesk.tools.contacts")


@dataclass(slots=True)
class Contact:
    id: str
    first_name: str = ""
    last_name: str = ""
    emails: List[str] = field(default_factory=list)
    phones: List[str] = field(default_factory=list)
    company_name: str | None = None
    job_title: str | None = None
    city: str | None = None
    state: str | None = None
    linkedin: str | None = None
    description: str | None = None
    created_at: float = 0.0

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["name"] = self.display_name
        return data


class ContactBook:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._contacts: Dict[str, Contact] = {}

    def create(self, params: Dict[str, Any]) -> Contact:
        first = (params.get("first_name") or "").strip()
        last = (params.get("last_name") or "").strip()
        if not first and not last:
            raise ValidationError("At least first name or last name is required")
        contact = Contact(
            id=new_id(),
            first_name=first,
            last_name=last,
            emails=[e.strip() for e in params.get("_emails") or [] if e.strip()],
            phones=[p.strip() for p in params.get("_phones") or [] if p.strip()],
            company_name=params.get("company_name") or None,
            job_title=params.get("job_title") or None,
            city=params.get("city") or None,
            state=params.get("state") or None,
            linkedin=params.get("linkedin") or None,
            description=params.get("description") or None,
            created_at=time(),
        )
        with self._lock:
            self._contacts[contact.id] = contact
        logger.info("contact created id=%s", contact.id)
        return contact

    def get(self, contact_id: str) -> Contact | None:
        with self._lock:
            return self._contacts.get(contact_id)

    def all(self) -> List[Contact]:
        with self._lock:
            return list(self._contacts.values())

    def __len__(self) -> int:
        return len(self._contacts)


__all__ = ["Contact", "ContactBook"]
