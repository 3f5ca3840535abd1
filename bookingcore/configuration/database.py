from functools import lru_cache
from azure.cosmos import CosmosClient
from azure.identity import DefaultAzureCredential
from bookingcore.configuration.config import Config


@lru_cache(maxsize=1)
def get_database():
    """
    Build the Cosmos database client on first use.
    A key from the environment wins; otherwise DefaultAzureCredential is used.
    """
    credential = Config.COSMOSDB_KEY or DefaultAzureCredential()
    client = CosmosClient(
        url=Config.COSMOSDB_ENDPOINT,
        credential=credential
    )
    return client.get_database_client(Config.COSMOSDB_DATABASE_NAME)


# Dictionary to store container references
containers = {}

def get_container(container_key: str):
    """
    Dependency that provides the CosmosDB container client
    Args:
        container_key (str): Key of the container to get (bookings, businesses, etc.)
    Returns:
        Container client for the specified container
    """
    if container_key not in Config.COSMOSDB_CONTAINER_NAME:
        raise ValueError(f"Container {container_key} not found")
    if container_key not in containers:
        containers[container_key] = get_database().get_container_client(
            Config.COSMOSDB_CONTAINER_NAME[container_key]
        )
    return containers[container_key]
