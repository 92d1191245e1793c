"""Database clients, connections and the persistence gateway.

Imports are not eagerly loaded here so that importing one client never
opens the other's connection pool during test collection.
Use explicit imports: ``from app.db.gateway import SqlPersistenceGateway``, etc.
"""
