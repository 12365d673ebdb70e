"""
tests/test_models.py
Unit tests for sheetforge.models: field normalization, entity derived forms,
schema construction and GenerationConfig.
"""

from __future__ import annotations

from typing import Any, Dict, List

import pytest
from pydantic import ValidationError

from sheetforge.exceptions import SchemaInputError
from sheetforge.models import (
    EntitySchema,
    FieldDescriptor,
    GenerationConfig,
    SchemaDefinition,
    infer_ui_type,
)


class TestFieldDescriptor:
    def test_spreadsheet_aliases(self) -> None:
        fd = FieldDescriptor.model_validate({"fieldName": "title", "uiType": "TextArea"})
        assert fd.field_name == "title"
        assert fd.ui_type == "textarea"

    def test_snake_case_names_accepted(self) -> None:
        fd = FieldDescriptor.model_validate({"field_name": "title", "ui_type": "select"})
        assert fd.field_name == "title"
        assert fd.ui_type == "select"

    def test_defaults(self) -> None:
        fd = FieldDescriptor.model_validate({"fieldName": "first_name"})
        assert fd.type == "string"
        assert fd.required is False
        assert fd.searchable is False
        assert fd.options == []
        assert fd.reference is None
        assert fd.label == "First Name"

    @pytest.mark.parametrize(
        "field_type, expected",
        [
            ("textarea", "textarea"),
            ("boolean", "checkbox"),
            ("date", "date"),
            ("image", "file"),
            ("file", "file"),
            ("number", "input"),
            (None, "input"),
        ],
    )
    def test_ui_type_inferred_from_type(self, field_type: Any, expected: str) -> None:
        assert infer_ui_type(field_type) == expected
        data: Dict[str, Any] = {"fieldName": "x"}
        if field_type is not None:
            data["type"] = field_type
        assert FieldDescriptor.model_validate(data).ui_type == expected

    def test_flags_and_options_normalized(self) -> None:
        fd = FieldDescriptor.model_validate(
            {"fieldName": "status", "required": "*", "searchable": "Yes", "options": "a, b"}
        )
        assert fd.required is True
        assert fd.searchable is True
        assert fd.options == ["a", "b"]

    def test_blank_reference_is_none(self) -> None:
        assert FieldDescriptor.model_validate({"fieldName": "x", "reference": "  "}).reference is None

    def test_type_is_lowercased(self) -> None:
        fd = FieldDescriptor.model_validate({"fieldName": "pw", "type": " Password "})
        assert fd.is_password
        assert fd.is_known_type

    def test_identity_hint(self) -> None:
        fd = FieldDescriptor.model_validate({"fieldName": "email", "uiType": "login:identity"})
        assert fd.is_identity

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FieldDescriptor.model_validate({"fieldName": "x", "colour": "red"})


class TestEntitySchema:
    def test_derived_forms(self) -> None:
        entity = EntitySchema(name=" Product Category ", fields=[])
        assert entity.name == "Product Category"
        assert entity.type_name == "ProductCategory"
        assert entity.slug == "product-category"
        assert entity.module == "product_category"
        assert entity.title == "Product Category"

    def test_special_fields(self) -> None:
        entity = EntitySchema(
            name="Doc",
            fields=[
                FieldDescriptor.model_validate({"fieldName": "title", "searchable": True}),
                FieldDescriptor.model_validate({"fieldName": "scan", "type": "image"}),
                FieldDescriptor.model_validate({"fieldName": "attachment", "type": "file"}),
                FieldDescriptor.model_validate({"fieldName": "owner", "reference": "User"}),
            ],
        )
        assert entity.file_field.field_name == "scan"
        assert [f.field_name for f in entity.searchable_fields] == ["title"]
        assert [f.field_name for f in entity.reference_fields] == ["owner"]
        assert entity.password_field is None
        assert entity.get_field("owner").reference == "User"
        assert entity.get_field("missing") is None


class TestSchemaDefinition:
    def test_from_mapping_keeps_order(self, product_rows: List[Dict[str, Any]]) -> None:
        schema = SchemaDefinition.from_mapping({"B": product_rows, "A": product_rows})
        assert schema.entity_names == ["B", "A"]
        assert schema.total_fields == 4

    def test_from_pairs_keeps_colliding_names(self, product_rows: List[Dict[str, Any]]) -> None:
        schema = SchemaDefinition.from_mapping([("Product", product_rows), ("Product ", product_rows)])
        assert schema.entity_names == ["Product", "Product"]

    def test_lookup_is_case_insensitive(self, product_schema: SchemaDefinition) -> None:
        assert product_schema.get_entity("PRODUCT") is not None
        assert product_schema.get_entity("product").name == "Product"
        assert product_schema.get_entity("missing") is None

    def test_references_are_rewritten_to_target_name(self) -> None:
        schema = SchemaDefinition.from_mapping(
            {
                "Product Category": [{"fieldName": "name"}],
                "Item": [
                    {"fieldName": "cat", "reference": "PRODUCT_CATEGORY"},
                    {"fieldName": "maker", "reference": "Maker"},
                ],
            }
        )
        assert schema.resolve_reference("product-category").name == "Product Category"
        assert schema.resolve_reference("Maker") is None
        assert schema.resolve_reference("--") is None
        item = schema.get_entity("Item")
        assert item.get_field("cat").reference == "Product Category"
        assert item.get_field("maker").reference == "Maker"

    def test_non_mapping_row_rejected(self) -> None:
        with pytest.raises(SchemaInputError) as info:
            SchemaDefinition.from_mapping({"Product": ["title"]})
        assert info.value.entity == "Product"

    def test_invalid_row_rejected(self) -> None:
        with pytest.raises(SchemaInputError) as info:
            SchemaDefinition.from_mapping({"Product": [{"fieldName": "x", "bogus": 1}]})
        assert "row 1" in info.value.message

    def test_blank_entity_name_rejected(self, product_rows: List[Dict[str, Any]]) -> None:
        with pytest.raises(SchemaInputError):
            SchemaDefinition.from_mapping({"   ": product_rows})


class TestGenerationConfig:
    def test_defaults(self) -> None:
        config = GenerationConfig()
        assert config.api_prefix == "/api"
        assert config.auth_entity_name == "authusers"
        assert config.token_expiry_seconds == 86400
        assert config.default_page_size == 10
        assert config.max_page_size == 100
        assert config.database_url == "sqlite+aiosqlite:///./admin.db"
        assert config.login_path == "/api/auth/login"
        assert config.api_path("product") == "/api/product"

    @pytest.mark.parametrize("prefix, expected", [("api/v1/", "/api/v1"), ("/", ""), (" /x ", "/x")])
    def test_prefix_normalized(self, prefix: str, expected: str) -> None:
        assert GenerationConfig(api_prefix=prefix).api_prefix == expected

    def test_page_size_bounds(self) -> None:
        with pytest.raises(ValidationError):
            GenerationConfig(default_page_size=50, max_page_size=20)
        with pytest.raises(ValidationError):
            GenerationConfig(default_page_size=0)

    def test_backend_package_must_be_identifier(self) -> None:
        with pytest.raises(ValidationError):
            GenerationConfig(backend_package="my-backend")

    def test_default_menu_groups(self) -> None:
        labels = [rule.label for rule in GenerationConfig().menu_groups]
        assert labels[0] == "User Management"
        assert "Catalogue Management" in labels
