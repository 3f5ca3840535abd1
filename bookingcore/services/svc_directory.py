from typing import Callable, Iterable, List, Optional, Tuple
from azure.core import MatchConditions
from azure.cosmos import ContainerProxy, exceptions
from bookingcore.configuration.config import Config
from bookingcore.configuration.monitor import log_event, log_warning, start_span
from bookingcore.models.mod_directory import AddressSnapshot, BusinessProfile, ServiceSnapshot
from bookingcore.models.mod_schedule import WeeklySchedule

MAX_TOKEN_LENGTH = 4096

# Alternate field names seen on stored location documents
_ADDRESS_FIELDS = ("address", "display_name", "display", "name")
_LATITUDE_FIELDS = ("latitude", "lat")
_LONGITUDE_FIELDS = ("longitude", "lon", "lng")
_FLOOR_FIELDS = ("floor", "floor_number", "level", "unit", "unit_number")
_NOTE_FIELDS = ("note", "notes", "description", "instructions")


def normalize_tokens(raw: Iterable) -> List[str]:
    """Keep non-empty string tokens, drop duplicates, preserve order"""
    tokens = []
    for token in raw or []:
        if isinstance(token, str) and token.strip() and token not in tokens:
            tokens.append(token)
    return tokens


def _first_present(doc: dict, fields):
    for field in fields:
        if doc.get(field) is not None:
            return doc[field]
    return None


def _as_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number == number else None  # NaN


def _optional_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class DirectoryService:
    """Read access to businesses, clients, saved locations and services, plus token set updates."""

    def __init__(self, businesses: ContainerProxy, clients: ContainerProxy,
                 locations: ContainerProxy, services: ContainerProxy):
        self.businesses = businesses
        self.clients = clients
        self.locations = locations
        self.services = services

    @classmethod
    def from_containers(cls, get_container: Callable[[str], ContainerProxy]) -> "DirectoryService":
        return cls(
            businesses=get_container("businesses"),
            clients=get_container("clients"),
            locations=get_container("locations"),
            services=get_container("services")
        )

    @staticmethod
    def _find_by_id(container: ContainerProxy, item_id: str) -> Optional[dict]:
        items = list(container.query_items(
            query="SELECT * FROM c WHERE c.id = @id",
            parameters=[{"name": "@id", "value": item_id}],
            enable_cross_partition_query=True
        ))
        return items[0] if items else None

    # --- businesses -------------------------------------------------------

    def get_business(self, business_id: str) -> Optional[BusinessProfile]:
        doc = self._find_by_id(self.businesses, business_id)
        if doc is None:
            return None
        schedule, schedule_error = None, None
        raw_schedule = doc.get("operating_schedule")
        if raw_schedule:
            try:
                schedule = WeeklySchedule.from_document(raw_schedule)
            except ValueError as e:
                # Profile and token reads keep working; booking creation refuses it
                schedule_error = str(e)
                log_warning("Invalid operating schedule on business", {
                    "business_id": business_id,
                    "error": schedule_error
                })
        return BusinessProfile(
            id=doc["id"],
            business_name=doc.get("business_name"),
            owner_id=doc.get("client_id"),
            schedule=schedule,
            schedule_error=schedule_error,
            tokens=normalize_tokens(doc.get("fcm_tokens"))
        )

    def get_business_schedule(self, business_id: str) -> Optional[WeeklySchedule]:
        business = self.get_business(business_id)
        return business.schedule if business else None

    def resolve_business_tokens(self, business_id: str) -> Tuple[List[str], Optional[str]]:
        """
        Business device tokens, falling back to the owning user's tokens.
        Also returns the owner's client id when the fallback was used, so
        dead tokens can be pruned from the set they were read from.
        """
        business = self.get_business(business_id)
        if business is None:
            return [], None
        if business.tokens:
            return business.tokens, None
        if business.owner_id:
            owner_tokens = self.get_client_tokens(business.owner_id)
            if owner_tokens:
                return owner_tokens, business.owner_id
        return [], None

    def get_business_tokens(self, business_id: str) -> List[str]:
        tokens, _ = self.resolve_business_tokens(business_id)
        return tokens

    def add_business_token(self, business_id: str, token: str) -> Optional[List[str]]:
        token = self._clean_token(token)

        def add(doc):
            tokens = list(doc.get("fcm_tokens") or [])
            if token in tokens:
                return False
            doc["fcm_tokens"] = tokens + [token]
            return True

        doc = self._update_token_set(self.businesses, business_id, add)
        return None if doc is None else list(doc.get("fcm_tokens") or [])

    def remove_business_tokens(self, business_id: str, tokens: List[str]) -> List[str]:
        """Pull the given tokens from the business token set; returns the tokens removed"""
        dead = set(tokens)
        removed = []

        def pull(doc):
            current = list(doc.get("fcm_tokens") or [])
            removed[:] = [t for t in current if t in dead]
            if not removed:
                return False
            doc["fcm_tokens"] = [t for t in current if t not in dead]
            return True

        self._update_token_set(self.businesses, business_id, pull)
        return list(removed)

    # --- clients ----------------------------------------------------------

    def client_exists(self, client_id: str) -> bool:
        return self._find_by_id(self.clients, client_id) is not None

    def get_client(self, client_id: str) -> Optional[dict]:
        return self._find_by_id(self.clients, client_id)

    def get_client_tokens(self, client_id: str) -> List[str]:
        doc = self._find_by_id(self.clients, client_id)
        if doc is None:
            return []
        tokens = normalize_tokens(doc.get("fcm_tokens"))
        if not tokens:
            tokens = normalize_tokens([doc.get("fcm_token")])
        return tokens

    def add_client_token(self, client_id: str, token: str) -> Optional[List[str]]:
        token = self._clean_token(token)

        def add(doc):
            tokens = list(doc.get("fcm_tokens") or [])
            if token in tokens:
                return False
            doc["fcm_tokens"] = tokens + [token]
            return True

        doc = self._update_token_set(self.clients, client_id, add)
        return None if doc is None else list(doc.get("fcm_tokens") or [])

    def remove_client_tokens(self, client_id: str, tokens: List[str]) -> List[str]:
        """Pull tokens from the client's set, or unset the legacy single token"""
        dead = set(tokens)
        removed = []

        def pull(doc):
            current = list(doc.get("fcm_tokens") or [])
            removed[:] = [t for t in current if t in dead]
            changed = False
            if removed:
                doc["fcm_tokens"] = [t for t in current if t not in dead]
                changed = True
            legacy = doc.get("fcm_token")
            if legacy in dead:
                doc.pop("fcm_token", None)
                if legacy not in removed:
                    removed.append(legacy)
                changed = True
            return changed

        self._update_token_set(self.clients, client_id, pull)
        return list(removed)

    # --- locations and services ------------------------------------------

    def get_selected_address(self, client_id: str) -> Optional[AddressSnapshot]:
        """The client's currently selected saved location, if it is usable as a booking address"""
        items = list(self.locations.query_items(
            query="SELECT * FROM c WHERE c.client_id = @client_id AND c.selected_location = true",
            parameters=[{"name": "@client_id", "value": client_id}],
            enable_cross_partition_query=True
        ))
        if not items:
            return None
        doc = items[0]
        latlng = doc.get("latlng") if isinstance(doc.get("latlng"), dict) else {}

        address = _first_present(doc, _ADDRESS_FIELDS)
        address = address.strip() if isinstance(address, str) else ""
        # Top-level coordinates win over a nested latlng pair
        coordinates = {**latlng, **doc}
        latitude = _as_float(_first_present(coordinates, _LATITUDE_FIELDS))
        longitude = _as_float(_first_present(coordinates, _LONGITUDE_FIELDS))
        if not address or latitude is None or longitude is None:
            return None

        return AddressSnapshot(
            address=address,
            latitude=latitude,
            longitude=longitude,
            floor=_optional_text(_first_present(doc, _FLOOR_FIELDS)),
            note=_optional_text(_first_present(doc, _NOTE_FIELDS))
        )

    def get_service_snapshot(self, service_id: str) -> Optional[ServiceSnapshot]:
        doc = self._find_by_id(self.services, service_id)
        if doc is None:
            return None
        return ServiceSnapshot(
            title=doc.get("title"),
            price=_as_float(doc.get("price")),
            duration=_optional_text(doc.get("duration"))
        )

    # --- token set updates -----------------------------------------------

    @staticmethod
    def _clean_token(token) -> str:
        if not isinstance(token, str) or not token.strip():
            raise ValueError("token must be a non-empty string")
        token = token.strip()
        if len(token) > MAX_TOKEN_LENGTH:
            raise ValueError("token is too long")
        return token

    def _update_token_set(self, container: ContainerProxy, item_id: str,
                          mutate: Callable[[dict], bool]) -> Optional[dict]:
        """
        Apply a set mutation to one document with optimistic concurrency.
        The document is re-read and the mutation re-applied whenever another
        writer got in first, so concurrent add/remove calls never lose updates.
        """
        with start_span("update_token_set", attributes={"item_id": item_id}):
            last_error = None
            for attempt in range(max(1, Config.TOKEN_PRUNE_MAX_RETRIES)):
                doc = self._find_by_id(container, item_id)
                if doc is None:
                    return None
                if not mutate(doc):
                    return doc
                try:
                    updated = container.replace_item(
                        item=doc["id"],
                        body=doc,
                        etag=doc.get("_etag"),
                        match_condition=MatchConditions.IfNotModified
                    )
                    log_event("Token set updated", {"item_id": item_id, "attempt": attempt + 1})
                    return updated or doc
                except exceptions.CosmosAccessConditionFailedError as e:
                    last_error = e
                    log_warning("Token set changed concurrently, retrying", {"item_id": item_id})
            raise last_error
