"""Tests for embeddings generation with mocked OpenAI API."""

from unittest.mock import MagicMock, patch

import pytest

from app.core.embeddings import MAX_INPUT_CHARS, embed_texts, generate_embedding


@pytest.fixture
def mock_openai_response():
    """Build a fake OpenAI embeddings response."""

    def _create_response(num_embeddings: int, dimension: int = 1536):
        mock_response = MagicMock()
        mock_response.data = [MagicMock(embedding=[0.1] * dimension) for _ in range(num_embeddings)]
        return mock_response

    return _create_response


@pytest.fixture
def openai_client():
    with patch("app.core.embeddings._get_client") as mock_get_client:
        mock_client = MagicMock()
        mock_get_client.return_value = mock_client
        yield mock_client


def test_embed_texts_one_vector_per_input(openai_client, mock_openai_response):
    openai_client.embeddings.create.return_value = mock_openai_response(3)

    embeddings = embed_texts(["Warranty terms", "Payment schedule", "Change orders"])

    assert len(embeddings) == 3
    assert all(len(e) == 1536 for e in embeddings)
    openai_client.embeddings.create.assert_called_once()


def test_embed_texts_empty():
    assert embed_texts([]) == []


def test_embed_texts_normalizes_input(openai_client, mock_openai_response):
    openai_client.embeddings.create.return_value = mock_openai_response(2)

    embed_texts(["Warranty\n\n  covers   labor", "x" * (MAX_INPUT_CHARS + 50)])

    sent = openai_client.embeddings.create.call_args.kwargs["input"]
    assert sent[0] == "Warranty covers labor"
    assert len(sent[1]) == MAX_INPUT_CHARS


def test_embed_texts_dimension_validation(openai_client, mock_openai_response):
    openai_client.embeddings.create.return_value = mock_openai_response(1, dimension=512)

    with pytest.raises(ValueError, match="Embedding dimension mismatch"):
        embed_texts(["Test text"])


def test_embed_texts_api_failure(openai_client):
    openai_client.embeddings.create.side_effect = Exception("API Error")

    with pytest.raises(Exception, match="API Error"):
        embed_texts(["Test text"])


def test_embed_texts_uses_configured_model(openai_client, mock_openai_response, monkeypatch):
    monkeypatch.setenv("EMBEDDING_MODEL", "text-embedding-3-large")
    openai_client.embeddings.create.return_value = mock_openai_response(1)

    embed_texts(["Test"])

    assert openai_client.embeddings.create.call_args.kwargs["model"] == "text-embedding-3-large"


def test_generate_embedding_returns_vector(openai_client, mock_openai_response):
    openai_client.embeddings.create.return_value = mock_openai_response(1)

    assert len(generate_embedding("warranty terms")) == 1536


def test_generate_embedding_returns_none_on_failure(openai_client):
    openai_client.embeddings.create.side_effect = Exception("rate limited")

    assert generate_embedding("warranty terms") is None


def test_generate_embedding_skips_blank_text(openai_client):
    assert generate_embedding("   ") is None
    openai_client.embeddings.create.assert_not_called()
