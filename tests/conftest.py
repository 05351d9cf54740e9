import json
import os

# no trace export from the test-suite; must be set before langfuse is imported
os.environ.setdefault("LANGFUSE_TRACING_ENABLED", "false")

from concurrent.futures import Executor, Future
from datetime import datetime, timedelta, timezone

import pytest

from adapters.whatsapp.evolution_adapter import EvolutionAdapter
from contacts.embeddings import EmbeddingJobs
from models.user import User
from shared import phone
from shared.config import Settings
from shared.time import clear_fake_utcnow, set_fake_utcnow
from store.factory import Stores
from store.memory import InMemoryContactStore, InMemoryRegistrationFlowStore, InMemoryUserStore

PROMPT_KEY_LENGTH = 40

# words the fake embedding model knows; one dimension each
EMBEDDING_VOCABULARY = ("advogado", "direito", "design", "engenheiro", "petróleo", "marketing")


class FakeInference:
    """
    Scripted text-inference client. Replies are queued per prompt (matched on the
    prompt's opening text, so rendered templates still match); the last reply of a
    queue repeats. A reply can be a string, a dict (sent as JSON), a callable taking
    the user text, or an exception instance to raise.
    """

    def __init__(self):
        self.scripts = {}
        self.calls = []
        self.histories = []

    def script(self, prompt, *replies):
        self.scripts[prompt[:PROMPT_KEY_LENGTH]] = list(replies)

    def calls_for(self, prompt):
        return [text for key, text in self.calls if key == prompt[:PROMPT_KEY_LENGTH]]

    def _reply(self, prompt, text):
        key = prompt[:PROMPT_KEY_LENGTH]
        self.calls.append((key, text))
        queue = self.scripts.get(key)
        if not queue:
            raise AssertionError(f"unscripted inference call for prompt {key!r}")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(text)
        if isinstance(reply, dict):
            return json.dumps(reply, ensure_ascii=False)
        return reply

    def classify(self, prompt, text, *, temperature=0.1, max_tokens=20):
        return self._reply(prompt, text)

    def complete(self, prompt, text, *, history=(), temperature=0.3, max_tokens=None, json_mode=True):
        self.histories.append(list(history))
        return self._reply(prompt, text)


class FakeEmbeddings:
    """Bag-of-words vectors over a fixed vocabulary."""

    def __init__(self, vocabulary=EMBEDDING_VOCABULARY):
        self.vocabulary = vocabulary
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        lowered = text.casefold()
        return [1.0 if word in lowered else 0.0 for word in self.vocabulary]


class InlineExecutor(Executor):
    """Runs submitted jobs immediately, so background embedding work is visible to asserts."""

    def submit(self, fn, /, *args, **kwargs):
        fut = Future()
        try:
            fut.set_result(fn(*args, **kwargs))
        except Exception as e:
            fut.set_exception(e)
        return fut


class RecordingEvolutionAdapter(EvolutionAdapter):
    def __init__(self):
        super().__init__("http://evolution.local", "test-key", "netloop")
        self.sent = []

    async def send_text(self, phone, message):
        self.sent.append((phone, message))
        return True


class FakeClock:
    def __init__(self, start):
        self.now = start
        set_fake_utcnow(start)

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        set_fake_utcnow(self.now)
        return self.now


@pytest.fixture(autouse=True)
def country_code(monkeypatch):
    """build_services applies DEFAULT_COUNTRY_CODE module-wide; every test starts from Brazil."""
    monkeypatch.setattr(phone, "_country_code", phone.DEFAULT_COUNTRY_CODE)


@pytest.fixture
def clock():
    c = FakeClock(datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc))
    yield c
    clear_fake_utcnow()


@pytest.fixture
def settings():
    return Settings(store_backend="memory")


@pytest.fixture
def inference():
    return FakeInference()


@pytest.fixture
def embeddings():
    return FakeEmbeddings()


@pytest.fixture
def contact_store():
    return InMemoryContactStore()


@pytest.fixture
def user_store():
    return InMemoryUserStore()


@pytest.fixture
def flow_store():
    return InMemoryRegistrationFlowStore()


@pytest.fixture
def stores(contact_store, user_store, flow_store):
    return Stores(contacts=contact_store, users=user_store, flows=flow_store)


@pytest.fixture
def embedding_jobs(contact_store, embeddings):
    return EmbeddingJobs(contact_store, embeddings, executor=InlineExecutor())


def add_user(user_store, user_id, name, phone, email=None, status="active"):
    user = User(
        user_id=user_id,
        name=name,
        email=email or f"{user_id}@example.com",
        phone=phone,
        status=status,
    )
    user_store.users[user_id] = user
    return user


@pytest.fixture
def owner(user_store):
    return add_user(user_store, "owner-1", "Ana Souza", "5521911112222", email="ana@example.com")


@pytest.fixture
def make_user(user_store):
    def _make(user_id, name, phone, **kwargs):
        return add_user(user_store, user_id, name, phone, **kwargs)
    return _make


@pytest.fixture
def messenger():
    return RecordingEvolutionAdapter()
