"""Solr engine: query compilation, paging, grouping, indexing and status."""
