"""Message model for chat lines kept in room history."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict

# Whitespace and line terminators removed around chat text: tab, LF, VT, FF,
# CR, space, NBSP, the Unicode space separators, LS, PS and the BOM.
# Unlike str.strip(), the BOM is included and the C0 separators
# \x1c-\x1f and NEL are kept.
TRIM_CHARS = (
    "\t\n\x0b\x0c\r \u00a0\u1680"
    "\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a"
    "\u2028\u2029\u202f\u205f\u3000\ufeff"
)


def trim_text(text: str) -> str:
    return text.strip(TRIM_CHARS)


def now_ms() -> int:
    """Current server time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Message:
    """A single chat line broadcast to a room."""

    sender: str
    text: str
    sent_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to its wire representation."""
        return {
            'nick': self.sender,
            'text': self.text,
            'timestamp': self.sent_at
        }

    def __repr__(self) -> str:
        return f"Message(sender={self.sender!r}, text={self.text!r}, sent_at={self.sent_at!r})"
