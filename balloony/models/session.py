"""
Tracking session model.

A SondeSession is the durable per-sonde state kept while a sonde is being
tracked. It lives in the session store under the sonde serial and expires
8 hours after the last write.

SondeSessionRow is the SQL table used by SqlSessionStore. Redis stores the
same JSON payload under the serial key.
"""

import json
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from balloony.models.base import Base


@dataclass
class SondeSession:
    """
    Per-sonde tracking state.

    time      - epoch seconds of the last processed record
    webhook   - handle of the Discord message to update
    from_text - launch site annotation, e.g. "From Example Site"
    imet_alt  - last seen altitude, only tracked for Intermet sondes
    """
    time: int
    webhook: str
    from_text: str = ''
    imet_alt: Optional[int] = None

    def to_json(self) -> str:
        payload = {
            'time': self.time,
            'webhook': self.webhook,
            'fromText': self.from_text,
        }
        if self.imet_alt is not None:
            payload['imetAlt'] = self.imet_alt
        return json.dumps(payload)

    @classmethod
    def from_json(cls, data) -> 'SondeSession':
        """Decode a stored payload. Raises ValueError on bad data."""
        if isinstance(data, bytes):
            data = data.decode('utf-8')
        raw = json.loads(data)
        if not isinstance(raw, dict):
            raise ValueError('session payload is not an object')
        imet_alt = raw.get('imetAlt')
        return cls(
            time=int(raw.get('time', 0)),
            webhook=raw.get('webhook', ''),
            from_text=raw.get('fromText', ''),
            # Zero is what older payloads stored for "unset"
            imet_alt=int(imet_alt) if imet_alt else None,
        )


class SondeSessionRow(Base):
    """
    Stored session for one sonde.

    expires_at is an epoch timestamp; rows past it are treated as absent,
    which keeps the 8 hour expiry intact across restarts.
    """

    __tablename__ = 'sonde_sessions'

    serial: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment='Sonde serial number'
    )

    payload: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment='JSON encoded SondeSession'
    )

    expires_at: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        index=True,
        comment='Unix timestamp after which the session is gone'
    )

    def __repr__(self) -> str:
        return f'<SondeSessionRow {self.serial} expires={self.expires_at}>'
