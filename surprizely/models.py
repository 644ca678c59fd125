"""
Stored records. Each record serializes to the camelCase dicts used both in the
data files and in API responses.
"""
import re
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import ClassVar, Optional

from flask_login import UserMixin

from credentials import Credential

GIFT_CATEGORIES = (
    "Electronics",
    "Fashion",
    "Home & Living",
    "Books",
    "Toys",
    "Jewelry",
    "Sports",
    "Beauty",
)

GIVEAWAY_STATUSES = ("pending", "approved", "rejected")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: str) -> Optional[datetime]:
    s = str(value or "").strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


class Record:
    hidden_fields: ClassVar[tuple] = ()
    legacy_keys: ClassVar[dict] = {}

    def to_dict(self) -> dict:
        return {
            _camel(f.name): getattr(self, f.name)
            for f in fields(self)
            if f.name not in self.hidden_fields
        }

    @classmethod
    def from_dict(cls, raw: dict):
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in raw.items():
            name = cls.legacy_keys.get(key) or _snake(key)
            if name in known and name not in cls.hidden_fields:
                kwargs[name] = value
        return cls(**kwargs)

    def apply(self, changes: dict):
        known = {f.name for f in fields(self)}
        for name, value in changes.items():
            if name not in known or name == "id":
                raise AttributeError(f"{type(self).__name__} has no writable field {name!r}")
            setattr(self, name, value)


@dataclass(eq=False)
class User(Record, UserMixin):
    hidden_fields: ClassVar[tuple] = ("credential",)

    id: int
    username: str
    email: str = ""
    name: Optional[str] = None
    is_admin: bool = False
    created_at: str = field(default_factory=utc_now_iso)
    credential: Optional[Credential] = None


@dataclass
class Product(Record):
    legacy_keys: ClassVar[dict] = {"image": "image_url"}

    id: int
    name: str
    description: str = ""
    price: int = 0
    image_url: str = ""
    affiliate_link: str = ""
    category: str = ""
    average_rating: float = 0
    rating_count: int = 0
    created_at: str = field(default_factory=utc_now_iso)


@dataclass
class Rating(Record):
    id: int
    user_id: int
    product_id: int
    rating: int
    created_at: str = field(default_factory=utc_now_iso)


@dataclass
class GiveawayEntry(Record):
    legacy_keys: ClassVar[dict] = {"orderID": "order_id", "receiptImage": "screenshot_url"}

    id: int
    email: str
    ip_address: str = ""
    order_id: str = ""
    screenshot_url: Optional[str] = None
    product_link: Optional[str] = None
    status: str = "pending"
    email_sent: bool = False
    created_at: str = field(default_factory=utc_now_iso)
