"""
Shared fixtures for dispatcher tests.
"""

from unittest.mock import Mock

import pytest

from helpers import RecordingEventStore, make_response, word_counter
from jacob_gpt.config.loader import DispatchConfig
from jacob_gpt.sdk.openai_client import GPTDispatcher


@pytest.fixture
def client():
    mock_client = Mock()
    mock_client.chat.completions.create.return_value = make_response()
    return mock_client


@pytest.fixture
def event_store():
    return RecordingEventStore()


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def dispatcher(client, event_store, sleep):
    return GPTDispatcher(
        config=DispatchConfig(),
        client=client,
        event_store=event_store,
        token_counter=word_counter,
        sleep=sleep,
    )
