"""Mapping layer - declarations, cached metadata and row materialization."""

from __future__ import annotations

from row_materializer.mapping.declarations import (
    SqlEntity,
    SqlField,
    SqlParameter,
    SqlProcedure,
    get_entity_declaration,
    get_procedure_declaration,
)
from row_materializer.mapping.metadata import (
    EntityMetadata,
    FieldMapping,
    MetadataCache,
    NestedEntityMapping,
    ProcedureMetadata,
    ProcedureParameterMapping,
    get_entity_metadata,
    get_procedure_metadata,
)
from row_materializer.mapping.model import (
    EntityMapper,
    convert_data_reader_to_entities,
    convert_data_table_to_entities,
    convert_entities_to_data_table,
    validate_entity_request,
)

__all__ = [
    "SqlEntity",
    "SqlField",
    "SqlParameter",
    "SqlProcedure",
    "get_entity_declaration",
    "get_procedure_declaration",
    "EntityMetadata",
    "FieldMapping",
    "NestedEntityMapping",
    "ProcedureMetadata",
    "ProcedureParameterMapping",
    "MetadataCache",
    "get_entity_metadata",
    "get_procedure_metadata",
    "EntityMapper",
    "convert_data_reader_to_entities",
    "convert_data_table_to_entities",
    "convert_entities_to_data_table",
    "validate_entity_request",
]
