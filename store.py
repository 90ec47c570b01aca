# store.py
# MongoDB persistence for users and their classification history.
# History entries are embedded in the user document and kept in insertion order.

import logging

from bson.objectid import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError

from models import new_user

logger = logging.getLogger(__name__)


class DuplicateUserError(Exception):
    pass


class MongoStore:

    def __init__(self, db):
        self.users_collection = db["users"]

    @classmethod
    def connect(cls, uri, db_name):
        client = MongoClient(uri, serverSelectionTimeoutMS=5000)
        store = cls(client[db_name])
        store.users_collection.create_index("email", unique=True)
        logger.info("Successfully connected to MongoDB database %s", db_name)
        return store

    def find_user_by_email(self, email):
        return self.users_collection.find_one({"email": email})

    def find_user_by_id(self, user_id):
        try:
            oid = ObjectId(user_id)
        except (InvalidId, TypeError):
            return None
        return self.users_collection.find_one({"_id": oid})

    def create_user(self, name, email, password_hash):
        if self.find_user_by_email(email):
            raise DuplicateUserError(email)
        try:
            result = self.users_collection.insert_one(new_user(name, email, password_hash))
        except DuplicateKeyError:
            # lost a race with a concurrent signup
            raise DuplicateUserError(email)
        return str(result.inserted_id)

    def create_history_entry(self, user_id, entry):
        self.users_collection.update_one(
            {"_id": ObjectId(user_id)},
            {"$push": {"classification_history": entry},
             "$inc": {"classifications": 1}}
        )
        return entry

    def update_history_entry(self, user_id, entry_id, changes):
        result = self.users_collection.update_one(
            {"_id": ObjectId(user_id), "classification_history.entry_id": entry_id},
            {"$set": {f"classification_history.$.{key}": value for key, value in changes.items()}}
        )
        return result.matched_count > 0

    def list_history_for_user(self, user_id):
        user = self.find_user_by_id(user_id)
        if not user:
            return []
        return list(reversed(user.get('classification_history', [])))
