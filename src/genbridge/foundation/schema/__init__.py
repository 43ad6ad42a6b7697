"""Parameter schema introspection and argument validation."""

from .introspector import (
    FieldMetadata,
    JsonSchemaField,
    JsonSchemaTranslator,
    PydanticTranslator,
    SchemaTranslator,
    TypeName,
    get_array_element_type,
    get_enum_values,
    get_field_metadata,
    get_field_type_name,
    get_shape,
    introspect,
    is_field_required,
    supports_schema,
    validate_arguments,
)

__all__ = [
    "FieldMetadata", "JsonSchemaField", "TypeName",
    "SchemaTranslator", "PydanticTranslator", "JsonSchemaTranslator",
    "supports_schema", "get_shape", "is_field_required", "get_field_type_name", "get_array_element_type",
    "get_enum_values", "get_field_metadata", "introspect", "validate_arguments",
]
