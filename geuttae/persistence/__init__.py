"""Persistence contract and the MongoDB adapter."""

from geuttae.persistence.gateway import PersistenceGateway
from geuttae.persistence.mongo_gateway import MongoPersistenceGateway

__all__ = ["PersistenceGateway", "MongoPersistenceGateway"]
