"""
Services package for the game ladder bot.

External collaborators live here: the IGDB HTTP client and the catalog
resolver the ladder operations depend on.
"""

from .catalog_resolver import CatalogCategory, CatalogResolver
from .igdb_client import IGDBClient

__all__ = ['CatalogCategory', 'CatalogResolver', 'IGDBClient']
