import pytest
from flask import Flask

from app.vocab_widget.models import TOPICS, WordEntry
from app.vocab_widget.services import fallback_store
from app.vocab_widget.services.errors import ServiceFailureError, UnparsableResponseError
from app.vocab_widget.services.vocabulary_provider import VocabularyProvider


class _OfflineClient:
    is_configured = False

    def generate_json(self, *args, **kwargs):
        raise AssertionError("no request may be made without a credential")


class _ScriptedClient:
    """Configured client that answers generate_json with a fixed payload or error."""

    is_configured = True

    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    def generate_json(self, prompt, **kwargs):
        self.calls.append((prompt, kwargs))
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer


@pytest.fixture(autouse=True)
def app_context():
    app = Flask(__name__)
    with app.app_context():
        yield app


@pytest.mark.parametrize("topic", TOPICS, ids=[topic.id for topic in TOPICS])
def test_every_topic_has_offline_vocabulary(topic):
    words = VocabularyProvider(client=_OfflineClient()).fetch_vocabulary(topic.label, 5)

    assert words
    for entry in words:
        assert entry.word and entry.translation and entry.example


@pytest.mark.parametrize(
    "answer",
    [
        UnparsableResponseError("not json"),
        ServiceFailureError("HTTP 503"),
        [],
        [{"word": "", "translation": "", "example": ""}],
        [{"word": "cat"}],
        {"note": "no list here"},
        "just text",
        None,
    ],
)
def test_bad_service_answers_converge_on_offline_result(answer):
    label = "Food (食物)"
    offline = VocabularyProvider(client=_OfflineClient()).fetch_vocabulary(label, 5)
    client = _ScriptedClient(answer)

    result = VocabularyProvider(client=client).fetch_vocabulary(label, 5)

    assert len(client.calls) == 1
    assert result == offline == fallback_store.lookup(label)


def test_generated_entries_are_coerced_and_truncated():
    client = _ScriptedClient([
        {"word": " cat ", "translation": "猫", "example": "The cat sleeps.", "phonetic": "/kæt/"},
        {"word": "dog", "translation": "狗", "example": "A dog runs."},
        {"word": "pig", "translation": "猪"},
        {"word": "cow", "translation": "奶牛", "example": "The cow eats grass."},
    ])

    result = VocabularyProvider(client=client).fetch_vocabulary("Animals (动物)", 2)

    assert result == [
        WordEntry("cat", "猫", "The cat sleeps.", "/kæt/"),
        WordEntry("dog", "狗", "A dog runs.", None),
    ]
    prompt, kwargs = client.calls[0]
    assert "Generate 2 English vocabulary words" in prompt
    assert "Animals (动物)" in prompt
    assert kwargs["response_schema"]["items"]["required"] == ["word", "translation", "example"]


def test_wrapped_list_is_accepted():
    client = _ScriptedClient({"words": [{"word": "sun", "translation": "太阳", "example": "The sun is hot."}]})
    result = VocabularyProvider(client=client).fetch_vocabulary("Nature", 5)
    assert [entry.word for entry in result] == ["sun"]


def test_desired_count_is_clamped(app_context):
    app_context.config["VOCABULARY_MAX_WORD_COUNT"] = 10
    client = _ScriptedClient([])
    provider = VocabularyProvider(client=client)

    provider.fetch_vocabulary("Food", 500)
    provider.fetch_vocabulary("Food", 0)

    assert "Generate 10 English" in client.calls[0][0]
    assert "Generate 1 English" in client.calls[1][0]


def test_lookup_matches_id_label_and_english_part():
    by_label = fallback_store.lookup("Colors (颜色)")
    assert by_label == fallback_store.lookup("colors")
    assert by_label == fallback_store.lookup("COLORS")
    assert by_label[0].word == "red"


def test_lookup_unknown_topic_uses_default_list():
    words = fallback_store.lookup("Dinosaurs")
    assert [entry.word for entry in words] == ["apple", "dog", "book"]
    assert fallback_store.lookup("") == words
    assert fallback_store.lookup(None) == words


def test_fallback_examples_contain_their_word():
    for topic in TOPICS:
        for entry in fallback_store.lookup(topic.id):
            assert entry.word.lower() in entry.example.lower()
