from uuid import UUID

import pytest

from teatime_pubsub import topics
from teatime_pubsub.topics import Topics


@pytest.mark.parametrize(
    "build, want",
    [
        (lambda: topics.room("123"), "room:123"),
        (lambda: topics.user("456"), "user:456"),
        (lambda: topics.call("789"), "call:789"),
        (topics.presence, "presence"),
        (lambda: Topics.room(42), "room:42"),
        (lambda: Topics.user(7), "user:7"),
        (lambda: Topics.call(9), "call:9"),
        (Topics.presence, "presence"),
    ],
)
def test_topic_builder(build, want):
    assert build() == want


def test_uuid_ids_render_canonically():
    conv_id = UUID("12345678-1234-5678-1234-567812345678")
    assert topics.room(conv_id) == "room:12345678-1234-5678-1234-567812345678"
