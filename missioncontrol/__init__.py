"""
MissionControl backend package.

Agents submit geolocation pings and chain them into trails. The package
provides a FastAPI application on top of a pluggable ping store so the same
handlers run against an in-memory store or a SQL database.
"""
