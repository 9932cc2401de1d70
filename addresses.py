"""
Saved shipping addresses and the checkout address selection.

``AddressBook`` persists a user's addresses and keeps at most one of them
flagged as default. ``AddressSelector`` holds the address chosen for the
current checkout.
"""
import logging
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from database import create_document, ensure_object_id, get_documents, to_str_id, utcnow
from errors import AddressNotFoundError, ValidationError
from schemas import Address, AddressIn, AddressUpdate

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("label", "street", "city", "state", "zip_code", "phone")


def validate_address_fields(fields: Dict[str, Any]) -> None:
    for name in REQUIRED_FIELDS:
        value = fields.get(name)
        if value is None or not str(value).strip():
            label = name.replace("_", " ")
            raise ValidationError(f"{label.capitalize()} is required", field=name)


class AddressBook:
    collection = "address"

    def __init__(self, db: Database, user_id: str):
        self.db = db
        self.user_id = user_id

    def _demote_all(self) -> None:
        self.db[self.collection].update_many(
            {"user_id": self.user_id},
            {"$set": {"is_default": False, "updated_at": utcnow()}},
        )

    def _owned(self, address_id: str) -> Dict[str, Any]:
        return {"_id": ensure_object_id(address_id), "user_id": self.user_id}

    def list(self) -> List[Address]:
        docs = get_documents(self.db, self.collection, {"user_id": self.user_id}, sort=[("created_at", 1)])
        return [Address(**to_str_id(d)) for d in docs]

    def get(self, address_id: str) -> Address:
        doc = self.db[self.collection].find_one(self._owned(address_id))
        if not doc:
            raise AddressNotFoundError(address_id)
        return Address(**to_str_id(doc))

    def create(self, fields: AddressIn) -> Address:
        data = fields.model_dump()
        validate_address_fields(data)
        if data["is_default"]:
            self._demote_all()
        data["user_id"] = self.user_id
        address_id = create_document(self.db, self.collection, data)
        logger.info("Created address %s for user %s", address_id, self.user_id)
        return self.get(address_id)

    def update(self, address_id: str, fields: AddressUpdate) -> Address:
        changes = fields.model_dump(exclude_none=True)
        validate_address_fields({**self.get(address_id).model_dump(), **changes})
        if changes.get("is_default"):
            self._demote_all()
        changes["updated_at"] = utcnow()
        self.db[self.collection].update_one(self._owned(address_id), {"$set": changes})
        return self.get(address_id)

    def set_default(self, address_id: str) -> Address:
        return self.update(address_id, AddressUpdate(is_default=True))

    def delete(self, address_id: str) -> None:
        result = self.db[self.collection].delete_one(self._owned(address_id))
        if result.deleted_count == 0:
            raise AddressNotFoundError(address_id)


class AddressSelector:
    """The user's saved addresses plus the one selected for this checkout."""

    def __init__(self, addresses: List[Address]):
        self.addresses = list(addresses)
        self.selected_id: Optional[str] = self._initial_selection()

    @classmethod
    def load(cls, book: AddressBook) -> "AddressSelector":
        return cls(book.list())

    def _initial_selection(self) -> Optional[str]:
        for address in self.addresses:
            if address.is_default:
                return address.id
        if self.addresses:
            return self.addresses[0].id
        return None

    @property
    def selected(self) -> Optional[Address]:
        if self.selected_id is None:
            return None
        return self._find(self.selected_id)

    def _find(self, address_id: str) -> Optional[Address]:
        return next((a for a in self.addresses if a.id == address_id), None)

    def select(self, address_id: str) -> Address:
        address = self._find(address_id)
        if address is None:
            raise AddressNotFoundError(address_id)
        self.selected_id = address.id
        return address

    def create(self, book: AddressBook, fields: AddressIn) -> Address:
        was_empty = not self.addresses
        address = book.create(fields)
        if address.is_default:
            for other in self.addresses:
                other.is_default = False
        self.addresses.append(address)
        if was_empty:
            self.selected_id = address.id
        return address

    def make_default(self, book: AddressBook, address_id: str) -> Address:
        if self._find(address_id) is None:
            raise AddressNotFoundError(address_id)
        updated = book.set_default(address_id)
        for address in self.addresses:
            address.is_default = address.id == address_id
        return updated
