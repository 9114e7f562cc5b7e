"""
Tests for InMemoryCmsProvider.
"""

import pytest

from ctsync.core.exceptions import NotFoundError, PreconditionFailedError, ServerError


class TestInMemoryCmsProvider:
    """Tests for the dictionary-backed CMS."""

    def test_create_and_get(self, provider, article):
        """Created items are readable with a weak ETag."""
        created = provider.create_content_type(article)

        assert created.definition == article
        assert created.etag == 'W/"article-1"'
        assert provider.get_content_type("article").etag == created.etag

    def test_create_existing_fails(self, provider, article):
        provider.seed(article)

        with pytest.raises(PreconditionFailedError):
            provider.create_content_type(article)

    def test_update_checks_etag(self, provider, article):
        """A stale ETag is rejected; the current one is accepted."""
        provider.seed(article)
        stale = provider.etag_of("article")
        provider.modify("article", lambda data: data.update(description="remote"))

        with pytest.raises(PreconditionFailedError) as exc_info:
            provider.update_content_type("article", article, etag=stale)
        assert exc_info.value.etag == provider.etag_of("article")

        updated = provider.update_content_type("article", article, etag=provider.etag_of("article"))
        assert updated.definition.description == article.description

    def test_update_missing(self, provider, article):
        with pytest.raises(NotFoundError):
            provider.update_content_type("article", article)

    def test_delete(self, provider, article):
        provider.seed(article)

        assert provider.delete_content_type("article") is True
        assert provider.delete_content_type("article") is False
        assert provider.keys() == []

    def test_returned_definitions_are_copies(self, provider, article):
        """Mutating a returned definition does not touch the stored item."""
        provider.seed(article)
        remote = provider.get_content_type("article")
        remote.definition.display_name = "Mutated"

        assert provider.get_content_type("article").definition.display_name == "Article"

    def test_fail_next(self, provider):
        """Injected failures are raised in order, then calls succeed."""
        provider.fail_next("get_content_types", ServerError("down"), times=2)

        for _ in range(2):
            with pytest.raises(ServerError):
                provider.get_content_types()
        assert provider.get_content_types() == []
        assert provider.call_count("get_content_types") == 3

    def test_seed_and_modify_not_recorded(self, provider, article):
        provider.seed(article)
        provider.modify("article", lambda data: None)
        provider.remove("article")

        assert provider.calls == []

    def test_modify_missing(self, provider):
        with pytest.raises(NotFoundError):
            provider.modify("missing", lambda data: None)
