import pytest

from fakes import FakeEmbedder, InMemoryRepository, StoredDocument, make_content


_ENV_VARS = (
    "KB_RETRIEVAL_INDEX_DIR",
    "KB_RETRIEVAL_DB_PATH",
    "KB_RETRIEVAL_EMBEDDING_PROVIDER",
    "KB_RETRIEVAL_EMBEDDING_MODEL",
    "KB_RETRIEVAL_EMBEDDING_DIM",
    "KB_RETRIEVAL_EMBED_BATCH_SIZE",
    "KB_RETRIEVAL_BATCH_DELAY_MS",
    "KB_RETRIEVAL_MAX_CONTENT_LENGTH",
    "KB_RETRIEVAL_CHECKPOINT_INTERVAL",
    "KB_RETRIEVAL_MAX_RETRIES",
    "KB_RETRIEVAL_RETRY_BASE_DELAY",
    "KB_RETRIEVAL_CALL_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def repository() -> InMemoryRepository:
    return InMemoryRepository(
        [
            StoredDocument(
                id="agreement",
                name="Master agreement",
                collection="legal",
                content=make_content("The purchase price is forty five million dollars."),
            ),
            StoredDocument(
                id="risk",
                name="Risk report",
                collection="legal",
                content=make_content("Litigation risk remains the main exposure."),
            ),
            StoredDocument(
                id="forecast",
                name="Revenue forecast",
                collection="finance",
                content=make_content("Revenue forecast for next year grows steadily."),
            ),
        ]
    )
