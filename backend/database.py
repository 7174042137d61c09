from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for the reminder query and per-organization lookups."""
        try:
            await self.db.organizations.create_index("id", unique=True)
            try:
                await self.db.organizations.create_index("slug", unique=True)
            except Exception:
                pass  # Index may already exist with different options

            await self.db.services.create_index("id", unique=True)
            await self.db.services.create_index("organization_id")

            await self.db.members.create_index("organization_id")
            await self.db.subscriptions.create_index("organization_id", unique=True)

            # Appointments - reminder eligibility scan (status + start + reminder marker)
            await self.db.appointments.create_index("id", unique=True)
            await self.db.appointments.create_index(
                [("status", 1), ("start_datetime", 1), ("reminder_sent_at", 1)]
            )
            await self.db.appointments.create_index("management_token", unique=True, sparse=True)

            # Audit log indexes - for per-organization timelines
            await self.db.audit_logs.create_index([("organization_id", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index("action")
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()
