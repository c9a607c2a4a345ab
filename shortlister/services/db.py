import motor.motor_asyncio
from pymongo import ASCENDING
import os
from dotenv import load_dotenv

from shortlister.utils.logging_config import get_logger

logger = get_logger(__name__)

load_dotenv()

MONGO_DETAILS = os.getenv("MONGO_DETAILS", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "resume_shortlister")

logger.info(f"Initializing MongoDB connection to database: {DB_NAME}")

try:
    client = motor.motor_asyncio.AsyncIOMotorClient(MONGO_DETAILS)
    db = client[DB_NAME]
    logger.info("MongoDB client initialized successfully")
except Exception as e:
    logger.error(f"Failed to initialize MongoDB client: {e}")
    raise

# Collections
resumes_coll = db["resumes"]
batches_coll = db["batches"]

RESUME_INDEXES = [
    [("email_key", ASCENDING)],
    [("normalized_phone", ASCENDING)],
    [("status", ASCENDING)],
    [("batch_id", ASCENDING)],
    [("created_at", ASCENDING), ("_id", ASCENDING)],
]


async def init_indexes():
    """Index initialization for collections."""
    logger.info("Starting database index initialization")

    for keys in RESUME_INDEXES:
        try:
            await resumes_coll.create_index(keys)
            logger.debug(f"Created index on resumes.{[k for k, _ in keys]}")
        except Exception as e:
            logger.warning(f"Could not create index on resumes.{[k for k, _ in keys]}: {e}")

    try:
        await batches_coll.create_index([("batch_id", ASCENDING)], unique=True)
        logger.debug("Created unique index on batches.batch_id")
    except Exception as e:
        if "already exists" in str(e).lower():
            logger.debug("Index on batches.batch_id already exists")
        else:
            logger.warning(f"Could not create unique index on batches.batch_id: {e}")

    logger.info("Database index initialization completed")
