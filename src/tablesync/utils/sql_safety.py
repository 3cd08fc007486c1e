"""
SQL safety utilities for caller-supplied identifiers.

Table names, key columns and masked/excluded column names arrive as plain
strings from the caller and are spliced into generated statements, so they
are validated before any SQL is built.
"""

import re

# Strict ASCII-only patterns for SQL identifiers
VALID_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_$#]*$")
VALID_SCHEMA_TABLE = re.compile(
    r"^[a-zA-Z_][a-zA-Z0-9_$#]*(\.[a-zA-Z_][a-zA-Z0-9_$#]*)?$"
)

# Splits option strings such as "a, b; c"
LIST_SEPARATOR = re.compile(r"[\s,;]+")


def validate_identifier(identifier: str) -> None:
    """
    Validate a SQL identifier (column name, alias, key name).

    Args:
        identifier: The identifier to validate

    Raises:
        ValueError: If the identifier contains invalid characters
    """
    if not identifier:
        raise ValueError("SQL identifier cannot be empty")

    if not VALID_IDENTIFIER.match(identifier):
        raise ValueError(
            f"Invalid SQL identifier: {identifier!r}. "
            "Only ASCII letters, digits, underscores, '$' and '#' are allowed, "
            "and must start with a letter or underscore."
        )


def validate_schema_table(schema_table: str) -> None:
    """
    Validate a table name, optionally qualified as schema.table.

    Args:
        schema_table: The table identifier to validate

    Raises:
        ValueError: If the identifier format is invalid
    """
    if not schema_table:
        raise ValueError("Table name cannot be empty")

    if not VALID_SCHEMA_TABLE.match(schema_table):
        raise ValueError(
            f"Invalid table name: {schema_table!r}. "
            "Expected 'table' or 'schema.table' made of ASCII letters, "
            "digits and underscores."
        )


def split_schema_table(schema_table: str) -> tuple[str | None, str]:
    """
    Split a validated table name into (owner, table).

    Args:
        schema_table: "table" or "schema.table"

    Returns:
        Tuple of owner (None when unqualified) and bare table name
    """
    validate_schema_table(schema_table)

    if "." in schema_table:
        owner, table = schema_table.split(".", 1)
        return owner, table
    return None, schema_table


def split_name_list(value: str | list[str] | tuple[str, ...] | None) -> list[str]:
    """
    Normalize a column list option into a list of non-empty names.

    Args:
        value: List of names, or a string separated by whitespace, commas
            or semicolons

    Returns:
        List of names in the order given
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [item for item in LIST_SEPARATOR.split(value) if item]
    return [str(item).strip() for item in value if str(item).strip()]


def quote_literal(value: str) -> str:
    """
    Render a string as a single-quoted SQL literal.

    Args:
        value: Literal text

    Returns:
        Quoted literal with embedded quotes doubled
    """
    return "'" + str(value).replace("'", "''") + "'"
