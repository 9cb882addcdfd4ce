"""
Database module - Generic async MongoDB connection using Motor.

Usage:
    from common.database import MongoDB, set_main_database, get_main_database

    db = MongoDB()
    await db.connect(uri, database_name)
    set_main_database(db)

    main_db = get_main_database()
    collection = main_db.get_collection("circles")
"""

from common.database.mongodb import (
    MongoDB,
    set_main_database,
    get_main_database,
)

__all__ = [
    "MongoDB",
    "set_main_database",
    "get_main_database",
]
