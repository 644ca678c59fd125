"""
In-process entity store: users, products, wishlists, ratings and giveaway
entries kept in memory and mirrored to one JSON file per collection.

Every mutation rewrites the files of the collections it touched. A failed write
is logged and the in-memory state stays authoritative until restart; on start
the files are the rehydration source.
"""
import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set

from credentials import LegacyPlaintext, credential_from_dict, hash_password
from errors import NotFoundError, PersistenceError, ValidationError
from json_files import atomic_write_json, read_json
from models import GIVEAWAY_STATUSES, GiveawayEntry, Product, Rating, User, parse_iso, utc_now_iso
from rating_aggregator import refresh_product

logger = logging.getLogger("entity_store")

USERS_FILE = "users.json"
CREDENTIALS_FILE = "credentials.json"
PRODUCTS_FILE = "products.json"
RATINGS_FILE = "ratings.json"
WISHLIST_FILE = "wishlist.json"
GIVEAWAY_FILE = "giveaway.json"


class IdSequence:
    """Monotonic integer ids, starting at 1."""

    def __init__(self, start: int = 1):
        self._next = max(1, int(start))

    def next(self) -> int:
        value = self._next
        self._next += 1
        return value

    def peek(self) -> int:
        return self._next

    def reset(self, start: int):
        self._next = max(1, int(start))


class KeyedArena:
    """Records of one entity type keyed by id, with the id sequence that feeds them."""

    def __init__(self, entity: str, record_type):
        self.entity = entity
        self.record_type = record_type
        self.ids = IdSequence()
        self._items: Dict[int, object] = {}

    def __len__(self):
        return len(self._items)

    def __contains__(self, record_id):
        return record_id in self._items

    def get(self, record_id):
        return self._items.get(record_id)

    def require(self, record_id):
        record = self._items.get(record_id)
        if record is None:
            raise NotFoundError(self.entity.capitalize(), record_id)
        return record

    def values(self) -> list:
        return list(self._items.values())

    def create(self, **fields):
        record = self.record_type(id=self.ids.next(), **fields)
        self._items[record.id] = record
        return record

    def remove(self, record_id):
        return self._items.pop(record_id, None)

    def snapshot(self) -> dict:
        return {"nextId": self.ids.peek(), "items": [r.to_dict() for r in self._items.values()]}

    def restore(self, records: Iterable, next_id: Optional[int] = None):
        self._items = {r.id: r for r in records}
        floor = max(self._items.keys(), default=0) + 1
        self.ids.reset(max(floor, int(next_id or 0)))


def _unpack_collection(raw):
    """Return (item dicts, stored next id) for either file layout."""
    if isinstance(raw, list):
        return [x for x in raw if isinstance(x, dict)], None
    if isinstance(raw, dict):
        items = raw.get("items")
        next_id = raw.get("nextId")
        return [x for x in (items or []) if isinstance(x, dict)], next_id if isinstance(next_id, int) else None
    return [], None


class EntityStore:
    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.users = KeyedArena("user", User)
        self.products = KeyedArena("product", Product)
        self.giveaway_entries = KeyedArena("giveaway entry", GiveawayEntry)
        self.rating_ids = IdSequence()
        self._ratings: Dict[int, Dict[int, Rating]] = {}
        self._wishlists: Dict[int, Set[int]] = {}
        self.loaded = False
        self.last_persistence_error: Optional[str] = None

    # -------------------------
    # Persistence
    # -------------------------
    def _path(self, filename: str) -> str:
        return os.path.join(self.data_dir, filename)

    def _write(self, filename: str, payload):
        try:
            atomic_write_json(self._path(filename), payload)
        except PersistenceError as e:
            self.last_persistence_error = e.message
            logger.error("Persisting %s failed, keeping in-memory state: %s", filename, e.message)

    def _save_users(self):
        self._write(USERS_FILE, self.users.snapshot())
        self._write(CREDENTIALS_FILE, {
            str(u.id): u.credential.to_dict() for u in self.users.values() if u.credential is not None
        })

    def _save_products(self):
        self._write(PRODUCTS_FILE, self.products.snapshot())

    def _save_ratings(self):
        self._write(RATINGS_FILE, {
            "nextId": self.rating_ids.peek(),
            "byProduct": {
                str(pid): [r.to_dict() for r in by_user.values()]
                for pid, by_user in self._ratings.items()
                if by_user
            },
        })

    def _save_wishlist(self):
        self._write(WISHLIST_FILE, {str(uid): sorted(pids) for uid, pids in self._wishlists.items()})

    def _save_giveaway(self):
        self._write(GIVEAWAY_FILE, self.giveaway_entries.snapshot())

    def save_all(self):
        self._save_users()
        self._save_products()
        self._save_ratings()
        self._save_wishlist()
        self._save_giveaway()

    def _load_records(self, arena: KeyedArena, filename: str, decode=None) -> list:
        items, next_id = _unpack_collection(read_json(self._path(filename)))
        records = []
        for item in items:
            try:
                record = arena.record_type.from_dict(item)
                if decode:
                    decode(record, item)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping malformed %s record in %s: %s", arena.entity, filename, e)
                continue
            records.append(record)
        arena.restore(records, next_id)
        return records

    def load(self):
        """Rebuild every collection from the data directory."""
        os.makedirs(self.data_dir, exist_ok=True)

        def _legacy_password(user, item):
            if "password" in item:
                user.credential = credential_from_dict(item["password"])

        self._load_records(self.users, USERS_FILE, decode=_legacy_password)
        stored_credentials = read_json(self._path(CREDENTIALS_FILE))
        if isinstance(stored_credentials, dict):
            for key, raw in stored_credentials.items():
                user = self.users.get(int(key)) if str(key).isdigit() else None
                if user is None:
                    continue
                try:
                    user.credential = credential_from_dict(raw)
                except ValueError as e:
                    logger.warning("Skipping credential for user %s: %s", key, e)

        self._load_records(self.products, PRODUCTS_FILE)
        self._load_records(self.giveaway_entries, GIVEAWAY_FILE)
        self._load_ratings()
        self._load_wishlist()

        for product in self.products.values():
            refresh_product(product, self._ratings.get(product.id, {}).values())

        self.loaded = True
        logger.info(
            "Loaded store from %s: %s users, %s products, %s ratings, %s giveaway entries",
            self.data_dir,
            len(self.users),
            len(self.products),
            sum(len(v) for v in self._ratings.values()),
            len(self.giveaway_entries),
        )

    def _load_ratings(self):
        raw = read_json(self._path(RATINGS_FILE))
        next_id = None
        flat = []
        if isinstance(raw, list):
            flat = raw
        elif isinstance(raw, dict):
            next_id = raw.get("nextId") if isinstance(raw.get("nextId"), int) else None
            for rows in (raw.get("byProduct") or {}).values():
                flat.extend(rows if isinstance(rows, list) else [])
        self._ratings = {}
        highest = 0
        for item in flat:
            if not isinstance(item, dict):
                continue
            try:
                rating = Rating.from_dict(item)
            except TypeError as e:
                logger.warning("Skipping malformed rating: %s", e)
                continue
            self._ratings.setdefault(rating.product_id, {})[rating.user_id] = rating
            highest = max(highest, rating.id)
        self.rating_ids.reset(max(highest + 1, int(next_id or 0)))

    def _load_wishlist(self):
        raw = read_json(self._path(WISHLIST_FILE))
        self._wishlists = {u.id: set() for u in self.users.values()}
        if not isinstance(raw, dict):
            return
        for key, pids in raw.items():
            if not str(key).isdigit() or not isinstance(pids, list):
                continue
            uid = int(key)
            if uid not in self.users:
                continue
            self._wishlists[uid] = {p for p in pids if isinstance(p, int) and p in self.products}

    # -------------------------
    # Users
    # -------------------------
    def get_user(self, user_id: int) -> Optional[User]:
        return self.users.get(user_id)

    def get_users(self) -> List[User]:
        return self.users.values()

    def get_user_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.username == username), None)

    def get_user_by_email(self, email: str) -> Optional[User]:
        wanted = str(email or "").strip().lower()
        if not wanted:
            return None
        return next((u for u in self.users.values() if (u.email or "").lower() == wanted), None)

    def create_user(self, username: str, password: str, email: str = "", name: Optional[str] = None,
                    is_admin: bool = False) -> User:
        if self.get_user_by_username(username):
            raise ValidationError("Username already exists")
        user = self.users.create(
            username=username,
            email=email or "",
            name=name,
            is_admin=bool(is_admin),
            credential=hash_password(password),
        )
        self._wishlists[user.id] = set()
        self._save_users()
        self._save_wishlist()
        return user

    def update_user(self, user_id: int, **changes) -> User:
        user = self.users.require(user_id)
        new_username = changes.get("username")
        if new_username and new_username != user.username and self.get_user_by_username(new_username):
            raise ValidationError("Username already exists")
        changes.pop("credential", None)
        user.apply(changes)
        self._save_users()
        return user

    def update_user_password(self, user_id: int, password: str) -> User:
        user = self.users.require(user_id)
        user.credential = hash_password(password)
        self._save_users()
        return user

    def verify_user_password(self, user_id: int, password: str) -> bool:
        user = self.users.get(user_id)
        if user is None or user.credential is None:
            return False
        return user.credential.verify(password)

    def authenticate(self, username: str, password: str) -> Optional[User]:
        user = self.get_user_by_username(username)
        if user is None or not self.verify_user_password(user.id, password):
            return None
        return user

    def ensure_admin(self, username: str, password: str) -> User:
        """Create the reserved admin account when it does not exist yet."""
        existing = self.get_user_by_username(username)
        if existing:
            return existing
        try:
            credential = hash_password(password)
        except Exception as e:
            logger.warning("Hashing the default admin password failed, storing it in plaintext: %s", e)
            credential = LegacyPlaintext(password)
        user = self.users.create(username=username, is_admin=True, credential=credential)
        self._wishlists[user.id] = set()
        self._save_users()
        self._save_wishlist()
        logger.info("Created default admin account %r", username)
        return user

    # -------------------------
    # Products
    # -------------------------
    def get_products(self) -> List[Product]:
        return self.products.values()

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.products.get(product_id)

    def create_product(self, data: dict) -> Product:
        fields = {k: v for k, v in data.items() if k != "id"}
        if int(fields.get("price") or 0) < 0:
            raise ValidationError("Price must not be negative")
        fields.pop("average_rating", None)
        fields.pop("rating_count", None)
        product = self.products.create(**fields)
        self._save_products()
        return product

    def update_product(self, product_id: int, changes: dict) -> Product:
        product = self.products.require(product_id)
        changes = {k: v for k, v in changes.items() if k not in ("average_rating", "rating_count", "created_at")}
        if "price" in changes and int(changes["price"]) < 0:
            raise ValidationError("Price must not be negative")
        product.apply(changes)
        self._save_products()
        return product

    def delete_product(self, product_id: int):
        self.products.require(product_id)
        self.products.remove(product_id)
        for pids in self._wishlists.values():
            pids.discard(product_id)
        self._ratings.pop(product_id, None)
        self._save_products()
        self._save_wishlist()
        self._save_ratings()

    # -------------------------
    # Wishlist
    # -------------------------
    def get_wishlist(self, user_id: int) -> List[Product]:
        pids = self._wishlists.get(user_id) or set()
        return [self.products.get(pid) for pid in sorted(pids) if pid in self.products]

    def get_wishlist_ids(self, user_id: int) -> Set[int]:
        return set(self._wishlists.get(user_id) or ())

    def add_to_wishlist(self, user_id: int, product_id: int):
        self.users.require(user_id)
        self.products.require(product_id)
        self._wishlists.setdefault(user_id, set()).add(product_id)
        self._save_wishlist()

    def remove_from_wishlist(self, user_id: int, product_id: int):
        self.users.require(user_id)
        self._wishlists.setdefault(user_id, set()).discard(product_id)
        self._save_wishlist()

    # -------------------------
    # Ratings
    # -------------------------
    @staticmethod
    def _check_rating_value(value):
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
            raise ValidationError("Rating must be an integer from 1 to 5")

    def rate_product(self, user_id: int, product_id: int, rating: int) -> Product:
        product = self.products.require(product_id)
        self.users.require(user_id)
        self._check_rating_value(rating)
        by_user = self._ratings.setdefault(product_id, {})
        existing = by_user.get(user_id)
        if existing:
            existing.rating = rating
            existing.created_at = utc_now_iso()
        else:
            by_user[user_id] = Rating(
                id=self.rating_ids.next(),
                user_id=user_id,
                product_id=product_id,
                rating=rating,
            )
        refresh_product(product, by_user.values())
        self._save_ratings()
        self._save_products()
        return product

    def get_ratings(self) -> List[Rating]:
        return [r for by_user in self._ratings.values() for r in by_user.values()]

    def get_product_ratings(self, product_id: int) -> List[Rating]:
        return list((self._ratings.get(product_id) or {}).values())

    def get_user_rating(self, user_id: int, product_id: int) -> Optional[Rating]:
        return (self._ratings.get(product_id) or {}).get(user_id)

    def get_rating(self, rating_id: int) -> Optional[Rating]:
        for by_user in self._ratings.values():
            for rating in by_user.values():
                if rating.id == rating_id:
                    return rating
        return None

    def _refresh_after_rating_change(self, product_id: int):
        product = self.products.get(product_id)
        if product is not None:
            refresh_product(product, (self._ratings.get(product_id) or {}).values())
        self._save_ratings()
        self._save_products()

    def update_rating(self, rating_id: int, value: int) -> Rating:
        rating = self.get_rating(rating_id)
        if rating is None:
            raise NotFoundError("Rating", rating_id)
        self._check_rating_value(value)
        rating.rating = value
        rating.created_at = utc_now_iso()
        self._refresh_after_rating_change(rating.product_id)
        return rating

    def delete_rating(self, rating_id: int):
        rating = self.get_rating(rating_id)
        if rating is None:
            raise NotFoundError("Rating", rating_id)
        by_user = self._ratings.get(rating.product_id) or {}
        by_user.pop(rating.user_id, None)
        if not by_user:
            self._ratings.pop(rating.product_id, None)
        self._refresh_after_rating_change(rating.product_id)

    # -------------------------
    # Giveaway entries
    # -------------------------
    def create_giveaway_entry(self, data: dict) -> GiveawayEntry:
        fields = {k: v for k, v in data.items() if k != "id"}
        created_at = fields.pop("created_at", None)
        if isinstance(created_at, datetime):
            created_at = created_at.astimezone(timezone.utc).isoformat()
        entry = self.giveaway_entries.create(created_at=created_at or utc_now_iso(), **fields)
        self._save_giveaway()
        return entry

    def get_giveaway_entries(self) -> List[GiveawayEntry]:
        return self.giveaway_entries.values()

    def count_recent_giveaway_entries(self, ip_address: str, minutes: int = 60,
                                      now: Optional[datetime] = None) -> int:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(minutes=minutes)
        count = 0
        for entry in self.giveaway_entries.values():
            if entry.ip_address != ip_address:
                continue
            created = parse_iso(entry.created_at)
            if created is not None and created > cutoff:
                count += 1
        return count

    def mark_giveaway_email_sent(self, entry_id: int, sent: bool = True) -> GiveawayEntry:
        entry = self.giveaway_entries.require(entry_id)
        entry.email_sent = bool(sent)
        self._save_giveaway()
        return entry

    def update_giveaway_entry_status(self, entry_id: int, status: str) -> GiveawayEntry:
        if status not in GIVEAWAY_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(GIVEAWAY_STATUSES)}")
        entry = self.giveaway_entries.require(entry_id)
        entry.status = status
        self._save_giveaway()
        return entry

    # -------------------------
    # Status
    # -------------------------
    def counts(self) -> dict:
        return {
            "users": len(self.users),
            "products": len(self.products),
            "ratings": sum(len(v) for v in self._ratings.values()),
            "giveawayEntries": len(self.giveaway_entries),
        }
