"""
Pytest configuration and fixtures for tests.
Provides in-memory stores, two participants and a seeded conversation.
"""
import pytest
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport

from chatsync.config import settings
from chatsync.core.blob_store import InMemoryBlobStore
from chatsync.core.record_store import InMemoryRecordStore
from chatsync.dependencies import get_blob_store, get_record_store
from chatsync.main import fastapi_app
from chatsync.schemas.conversation import Conversation, ConversationSummary
from chatsync.schemas.message import Message
from chatsync.utils.datetime_utils import utc_now

USER_A = "user_a"
USER_B = "user_b"
CONVERSATION_ID = "conv_1"


@pytest.fixture
def store() -> InMemoryRecordStore:
    """Fresh in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    """Fresh in-memory blob store."""
    return InMemoryBlobStore()


@pytest.fixture
async def participants(store):
    """Create records for both test participants."""
    for participant_id, username in ((USER_A, "alice"), (USER_B, "bob")):
        await store.set(settings.users_collection, participant_id, {
            "id": participant_id,
            "username": username,
            "isOnline": False,
            "lastSeen": None,
            "blocked": [],
        })
    return USER_A, USER_B


@pytest.fixture
async def test_conversation(store, participants):
    """Create an empty conversation between the participants with both summaries."""
    now = utc_now()
    await store.set(
        settings.conversations_collection,
        CONVERSATION_ID,
        Conversation(created_at=now).to_record(),
    )
    for owner, receiver in ((USER_A, USER_B), (USER_B, USER_A)):
        summary = ConversationSummary(conversation_id=CONVERSATION_ID, receiver_id=receiver, updated_at=now)
        await store.set(settings.summaries_collection, owner, {"chats": [summary.to_record()]})
    return CONVERSATION_ID


@pytest.fixture
def add_messages(store, test_conversation):
    """Append messages directly to the seeded conversation."""
    async def _add(*messages: Message):
        for message in messages:
            await store.append_to_array(
                settings.conversations_collection,
                test_conversation,
                "messages",
                message.to_record(),
            )
    return _add


@pytest.fixture
def read_conversation(store):
    """Load a conversation record as a model."""
    async def _read(conversation_id: str = CONVERSATION_ID) -> Conversation:
        return Conversation.model_validate(await store.get(settings.conversations_collection, conversation_id))
    return _read


@pytest.fixture
def read_summary(store):
    """Load one participant's summary entry for a conversation."""
    async def _read(owner_id: str, conversation_id: str = CONVERSATION_ID) -> ConversationSummary:
        record = await store.get(settings.summaries_collection, owner_id)
        for entry in record["chats"]:
            summary = ConversationSummary.model_validate(entry)
            if summary.conversation_id == conversation_id:
                return summary
        raise AssertionError(f"No summary for {owner_id}/{conversation_id}")
    return _read


@pytest.fixture(scope="function")
async def client(store, blobs) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client acting as USER_A with in-memory stores."""
    fastapi_app.dependency_overrides[get_record_store] = lambda: store
    fastapi_app.dependency_overrides[get_blob_store] = lambda: blobs

    async with AsyncClient(
        transport=ASGITransport(app=fastapi_app),
        base_url="http://test",
        headers={"X-Participant-Id": USER_A},
    ) as ac:
        yield ac

    # Clear overrides after test
    fastapi_app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def unauth_client(store, blobs) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client WITHOUT a participant header."""
    fastapi_app.dependency_overrides[get_record_store] = lambda: store
    fastapi_app.dependency_overrides[get_blob_store] = lambda: blobs

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()
