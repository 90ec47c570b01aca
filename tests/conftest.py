import pytest
from unittest.mock import MagicMock
from io import BytesIO
import sys
import os
import uuid

# Dummy key so the completion client never refuses a call before it is mocked
os.environ['GEMINI_API_KEY'] = 'dummy'
os.environ['SECRET_KEY'] = 'test-secret'

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from PIL import Image

import application as app_module
import util
from store import DuplicateUserError
from models import WasteClassification, RecyclingInstructions
from werkzeug.security import generate_password_hash


class FakeStore:
    """In-memory stand-in for MongoStore."""

    def __init__(self):
        self.users = {}

    def find_user_by_email(self, email):
        for user in self.users.values():
            if user['email'] == email:
                return user
        return None

    def find_user_by_id(self, user_id):
        return self.users.get(user_id)

    def create_user(self, name, email, password_hash):
        if self.find_user_by_email(email):
            raise DuplicateUserError(email)
        user_id = uuid.uuid4().hex
        self.users[user_id] = {
            '_id': user_id,
            'name': name,
            'email': email,
            'password': password_hash,
            'classifications': 0,
            'classification_history': [],
        }
        return user_id

    def create_history_entry(self, user_id, entry):
        user = self.users[user_id]
        user['classification_history'].append(entry)
        user['classifications'] += 1
        return entry

    def update_history_entry(self, user_id, entry_id, changes):
        for entry in self.users[user_id]['classification_history']:
            if entry.get('entry_id') == entry_id:
                entry.update(changes)
                return True
        return False

    def list_history_for_user(self, user_id):
        user = self.users.get(user_id)
        if not user:
            return []
        return list(reversed(user['classification_history']))


CLASSIFICATION = {
    "wasteType": "Cardboard",
    "confidence": 0.9,
    "details": "Corrugated box",
}

INSTRUCTIONS = {
    "recyclingInstructions": "1. Flatten the box\n2. Remove tape\n3. Put it in the BLUE bin",
}


@pytest.fixture
def fake_store(monkeypatch):
    store = FakeStore()
    monkeypatch.setattr(app_module, 'store', store)
    return store


@pytest.fixture
def mock_completion():
    """Completion client answering both pipeline prompts."""
    client = MagicMock()

    def generate(prompt, output_model, image=None, mime_type=None):
        if output_model is WasteClassification:
            return WasteClassification.model_validate(CLASSIFICATION)
        return RecyclingInstructions.model_validate(INSTRUCTIONS)

    client.generate.side_effect = generate
    util.set_client(client)
    yield client
    util.set_client(None)


@pytest.fixture
def client(fake_store):
    app_module.application.config['TESTING'] = True
    with app_module.application.test_client() as test_client:
        yield test_client


@pytest.fixture
def user_id(fake_store):
    return fake_store.create_user("Ada", "ada@example.com", generate_password_hash("secret123"))


@pytest.fixture
def logged_in_client(client, user_id):
    with client.session_transaction() as sess:
        sess['user_id'] = user_id
    return client


@pytest.fixture
def png_bytes():
    buf = BytesIO()
    Image.new('RGB', (32, 24), color=(120, 90, 40)).save(buf, format='PNG')
    return buf.getvalue()
