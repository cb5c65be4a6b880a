"""Staffing backend package: business tables, data services, stores, API.

The package wraps the multi-tenant business database behind a table-query
client, shapes AI matching results and e-mail content, and exposes the
per-entity stores over HTTP.
"""
