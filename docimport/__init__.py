"""CSV bulk import of schema-governed documents."""
