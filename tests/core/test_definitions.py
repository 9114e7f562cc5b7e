"""
Tests for content-type definitions.
"""

import pytest

from ctsync.core.domain.definitions import (
    ComponentTypeDefinition,
    ContentTypeDefinition,
    DefinitionCategory,
    FieldDefinition,
    FolderTypeDefinition,
    PageTypeDefinition,
    parse_definition,
)
from ctsync.core.exceptions import ValidationError


# =============================================================================
# Category Dispatch
# =============================================================================


class TestCategoryDispatch:
    """Tests for building the right definition subclass."""

    def test_page_category(self, article_data):
        """A page category builds a PageTypeDefinition."""
        definition = ContentTypeDefinition.from_dict(article_data)
        assert isinstance(definition, PageTypeDefinition)
        assert definition.category is DefinitionCategory.PAGE

    def test_missing_category_defaults_to_component(self):
        """Definitions without a category are components."""
        definition = ContentTypeDefinition.from_dict({"key": "hero"})
        assert isinstance(definition, ComponentTypeDefinition)

    def test_folder_category_with_underscore_prefix(self):
        """Category names tolerate a leading underscore and any case."""
        definition = ContentTypeDefinition.from_dict({"key": "media", "category": "_Folder"})
        assert isinstance(definition, FolderTypeDefinition)

    def test_unknown_category_raises(self):
        """An unknown category is a validation error."""
        with pytest.raises(ValidationError, match="Unknown definition category"):
            ContentTypeDefinition.from_dict({"key": "x", "category": "widget"})

    def test_missing_key_raises(self):
        """A definition without a key cannot be built."""
        with pytest.raises(ValidationError, match="missing a key"):
            ContentTypeDefinition.from_dict({"display_name": "Nameless"})

    def test_non_mapping_raises(self):
        """Only mappings can be parsed."""
        with pytest.raises(ValidationError, match="must be a mapping"):
            ContentTypeDefinition.from_dict(["not", "a", "mapping"])  # type: ignore[arg-type]


# =============================================================================
# Parsing Details
# =============================================================================


class TestDefinitionParsing:
    """Tests for aliases, field shapes and extensions."""

    def test_display_name_aliases(self):
        """``displayName`` and ``name`` both map to display_name."""
        camel = ContentTypeDefinition.from_dict({"key": "a", "displayName": "Camel"})
        plain = ContentTypeDefinition.from_dict({"key": "b", "name": "Plain"})
        assert camel.display_name == "Camel"
        assert plain.display_name == "Plain"

    def test_display_name_defaults_to_key(self):
        """Without a name the key is used."""
        assert ContentTypeDefinition.from_dict({"key": "teaser"}).display_name == "teaser"

    def test_fields_as_mapping(self):
        """Fields given as a mapping are keyed by their mapping key."""
        definition = ContentTypeDefinition.from_dict(
            {"key": "a", "fields": {"title": {"type": "string"}, "body": {"type": "richtext"}}}
        )
        assert [f.key for f in definition.fields] == ["title", "body"]
        assert definition.field_map()["body"].type == "richtext"

    def test_unknown_keys_kept_as_extensions(self):
        """Keys the model does not know survive a round trip."""
        definition = ContentTypeDefinition.from_dict(
            {"key": "a", "sortOrder": 3, "extensions": {"owner": "web"}}
        )
        assert definition.extensions == {"owner": "web", "sortOrder": 3}
        assert definition.to_dict()["extensions"] == {"owner": "web", "sortOrder": 3}

    def test_shape_keys_per_category(self, article_data):
        """Page definitions carry may_contain_types in their output."""
        article_data["may_contain_types"] = ["teaser"]
        data = ContentTypeDefinition.from_dict(article_data).to_dict()
        assert data["may_contain_types"] == ["teaser"]
        assert "composition_behaviors" not in data

    def test_round_trip_is_stable(self, article):
        """to_dict output parses back to an equal definition."""
        assert ContentTypeDefinition.from_dict(article.to_dict()) == article

    def test_duplicate_field_keys(self):
        """Duplicate field keys are reported once each."""
        definition = ContentTypeDefinition.from_dict(
            {"key": "a", "fields": [{"key": "x"}, {"key": "y"}, {"key": "x"}, {"key": "x"}]}
        )
        assert definition.duplicate_field_keys() == ["x"]

    def test_parse_definition_passes_through_instances(self, article):
        """parse_definition returns definitions unchanged."""
        assert parse_definition(article) is article
        assert parse_definition(article.to_dict()) == article


class TestFieldDefinition:
    """Tests for FieldDefinition parsing."""

    def test_id_and_label_aliases(self):
        """``id`` and ``label`` stand in for key and name."""
        field = FieldDefinition.from_dict({"id": "title", "label": "Title"})
        assert field.key == "title"
        assert field.name == "Title"
        assert field.extensions == {}

    def test_missing_key_raises(self):
        """A field without any identifier is rejected."""
        with pytest.raises(ValidationError):
            FieldDefinition.from_dict({"type": "string"})

    def test_unknown_attributes_become_extensions(self):
        """Unknown field attributes are preserved."""
        field = FieldDefinition.from_dict({"key": "body", "maxLength": 500})
        assert field.extensions == {"maxLength": 500}
        assert field.to_dict()["extensions"] == {"maxLength": 500}
