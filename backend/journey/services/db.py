# async mongodb client for the engine
# uses motor for non-blocking operations

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from journey.config import settings

logger = logging.getLogger(__name__)


class Database:
    """async mongodb connection manager"""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self):
        """establish connection to mongodb"""
        if self.client is not None:
            return

        logger.info(f"Connecting to MongoDB database: {settings.MONGODB_DATABASE}")
        self.client = AsyncIOMotorClient(settings.MONGODB_URI)
        self.db = self.client[settings.MONGODB_DATABASE]

        # verify connection
        await self.client.admin.command("ping")
        logger.info("MongoDB connection established")

    async def close(self):
        """close mongodb connection"""
        if self.client:
            self.client.close()
            self.client = None
            self.db = None
            logger.info("MongoDB connection closed")

    # collection accessors

    @property
    def users(self):
        return self.db["users"]

    @property
    def journals(self):
        return self.db["journals"]

    @property
    def mood_snapshots(self):
        return self.db["mood_snapshots"]

    @property
    def mood_entries(self):
        # legacy mood feed, kept populated by the dual write in services/mood.py
        return self.db["mood_entries"]

    @property
    def patterns(self):
        return self.db["patterns"]

    @property
    def therapy_exercises(self):
        return self.db["therapy_exercises"]

    @property
    def weekly_reflections(self):
        return self.db["weekly_reflections"]

    @property
    def chat_messages(self):
        return self.db["chat_messages"]

    @property
    def dead_letters(self):
        return self.db["dead_letters"]


# singleton instance
db = Database()


async def get_db() -> Database:
    """dependency injection for database access"""
    return db
