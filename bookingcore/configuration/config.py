import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Config:
    # Azure CosmosDB Configuration
    COSMOSDB_ENDPOINT = os.getenv("COSMOS_DB_ENDPOINT")
    COSMOSDB_KEY = os.getenv("COSMOS_DB_KEY")  # Optional, DefaultAzureCredential otherwise
    COSMOSDB_DATABASE_NAME = os.getenv("COSMOS_DB_DATABASE")
    COSMOSDB_CONTAINER_NAME = {
        "bookings": os.getenv("COSMOS_CONTAINERS_BOOKINGS", "bookings"),
        "businesses": os.getenv("COSMOS_CONTAINERS_BUSINESSES", "businesses"),
        "clients": os.getenv("COSMOS_CONTAINERS_CLIENTS", "clients"),
        "locations": os.getenv("COSMOS_CONTAINERS_LOCATIONS", "locations"),
        "services": os.getenv("COSMOS_CONTAINERS_SERVICES", "services")
    }

    # Firebase Cloud Messaging
    FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS")
    FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
    PUSH_ANDROID_CHANNEL_ID = os.getenv("PUSH_ANDROID_CHANNEL_ID", "bookings")

    # Token collections are updated with optimistic concurrency
    TOKEN_PRUNE_MAX_RETRIES = int(os.getenv("TOKEN_PRUNE_MAX_RETRIES", "3"))

    # Application Insights
    APPLICATIONINSIGHTS_CONNECTION_STRING = os.getenv("APPINSIGHTS_INSTRUMENTATIONKEY")
