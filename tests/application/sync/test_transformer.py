"""
Tests for ContentTypeTransformer.
"""

import pytest

from ctsync.application.sync.transformer import (
    ContentTypeTransformer,
    generate_field_key,
    generate_type_key,
    is_managed,
)
from ctsync.core.domain.definitions import FieldDefinition


class TestKeyGeneration:
    """Tests for key normalization."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("article", "article"),
            ("Blog Post!", "BlogPost"),
            ("2col", "Type2col"),
            ("", "UntitledType"),
            ("---", "UntitledType"),
        ],
    )
    def test_generate_type_key(self, name, expected):
        """Type keys keep letters, digits and underscores and start with a letter."""
        assert generate_type_key(name) == expected

    def test_generate_field_key(self):
        """Field keys follow the same rule."""
        assert generate_field_key("hero image") == "heroimage"
        assert generate_field_key("1st") == "field1st"
        assert generate_field_key("") == "field"


class TestTransform:
    """Tests for transform."""

    def test_stamps_marker_and_normalizes(self, definition_factory):
        """Transformed definitions are marked managed and normalized."""
        definition = definition_factory("blog post", display_name="  Blog  ")
        definition.fields[0].type = " STRING "

        result = ContentTypeTransformer().transform(definition)

        assert result.key == "blogpost"
        assert result.display_name == "Blog"
        assert result.fields[0].type == "string"
        assert result.extensions["managed_by"] == "ctsync"
        assert "managed_by" not in definition.extensions

    def test_key_prefix(self, definition_factory):
        """A configured prefix is added once."""
        transformer = ContentTypeTransformer(key_prefix="cms_")
        assert transformer.transform(definition_factory("article")).key == "cms_article"
        assert transformer.transform(definition_factory("cms_article")).key == "cms_article"

    def test_transform_batch(self, definition_factory):
        """Batches transform every definition."""
        results = ContentTypeTransformer().transform_batch(
            [definition_factory("a"), definition_factory("b")]
        )
        assert [d.key for d in results] == ["a", "b"]

    def test_is_managed(self, definition_factory):
        """Managed means the marker, or the prefix when one is configured."""
        marked = ContentTypeTransformer().transform(definition_factory("a"))
        assert is_managed(marked)
        assert not is_managed(definition_factory("b"))
        assert is_managed(definition_factory("cms_b"), key_prefix="cms_")


class TestValidate:
    """Tests for validation."""

    def test_valid(self, article):
        """A well-formed definition passes."""
        result = ContentTypeTransformer().validate(article)
        assert result.valid
        assert result.errors == []

    def test_invalid_key(self, definition_factory):
        """Keys must match the platform pattern."""
        result = ContentTypeTransformer().validate(definition_factory("9lives"))
        assert not result.valid
        assert "Invalid key format: 9lives" in result.errors

    def test_reserved_and_duplicate_fields(self, article):
        """Reserved names and duplicate keys are errors."""
        article.fields = [FieldDefinition("id"), FieldDefinition("title"), FieldDefinition("title")]

        result = ContentTypeTransformer().validate(article)

        assert "Reserved field name at fields[0]: id" in result.errors
        assert "Duplicate field key: title" in result.errors

    def test_invalid_field_key(self, article):
        """Field keys must match the pattern."""
        article.fields = [FieldDefinition("hero image")]
        assert "Invalid field key at fields[0]: hero image" in (
            ContentTypeTransformer().validate(article).errors
        )

    def test_no_fields_warns(self, article):
        """A type without fields is valid with a warning."""
        article.fields = []
        result = ContentTypeTransformer().validate(article)
        assert result.valid
        assert result.warnings == ["No fields defined for content type"]
