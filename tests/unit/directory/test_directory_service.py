import copy
import pytest
from unittest.mock import MagicMock
from azure.core import MatchConditions
from azure.cosmos import exceptions

from bookingcore.services.svc_directory import DirectoryService, normalize_tokens
from bookingcore.models.mod_schedule import Weekday


def container_with(*docs):
    """Mock container whose queries return fresh copies of the given documents"""
    container = MagicMock()
    container.query_items.side_effect = lambda **kwargs: [copy.deepcopy(doc) for doc in docs]
    container.replace_item.side_effect = lambda item, body, **kwargs: body
    return container


class TestDirectoryService:
    @pytest.fixture
    def business_doc(self):
        return {
            "id": "business1",
            "_etag": "etag-1",
            "business_name": "Fresh Cuts",
            "client_id": "owner1",
            "operating_schedule": {
                "Mon": {"open": "09:00", "close": "17:00", "closed": False},
                "Tue": {"open": "09:00", "close": "17:00", "closed": True}
            },
            "fcm_tokens": ["t1", "t2", "", "t1", "t3"]
        }

    @pytest.fixture
    def client_doc(self):
        return {"id": "client1", "_etag": "etag-c", "first_name": "Ana", "fcm_tokens": ["c1", "c2"]}

    def make_directory(self, businesses=None, clients=None, locations=None, services=None):
        return DirectoryService(
            businesses=businesses or container_with(),
            clients=clients or container_with(),
            locations=locations or container_with(),
            services=services or container_with()
        )

    def test_normalize_tokens(self):
        assert normalize_tokens(["a", "", " ", None, 5, "a", "b"]) == ["a", "b"]
        assert normalize_tokens(None) == []

    def test_get_business_parses_schedule_and_tokens(self, business_doc):
        directory = self.make_directory(businesses=container_with(business_doc))

        business = directory.get_business("business1")

        assert business.business_name == "Fresh Cuts"
        assert business.owner_id == "owner1"
        assert business.tokens == ["t1", "t2", "t3"]
        assert business.schedule.for_day(Weekday.TUE).closed is True
        assert business.schedule.for_day(Weekday.SUN) is None

    def test_get_business_without_schedule(self):
        directory = self.make_directory(businesses=container_with({"id": "business1"}))

        assert directory.get_business_schedule("business1") is None

    def test_get_business_missing(self):
        directory = self.make_directory()

        assert directory.get_business("nope") is None
        assert directory.get_business_tokens("nope") == []

    def test_business_tokens_fall_back_to_owner(self):
        directory = self.make_directory(
            businesses=container_with({"id": "business1", "client_id": "owner1", "fcm_tokens": []}),
            clients=container_with({"id": "owner1", "fcm_token": "owner-token"})
        )

        assert directory.get_business_tokens("business1") == ["owner-token"]
        assert directory.resolve_business_tokens("business1") == (["owner-token"], "owner1")

    def test_own_business_tokens_report_no_owner(self, business_doc):
        directory = self.make_directory(businesses=container_with(business_doc))

        assert directory.resolve_business_tokens("business1") == (["t1", "t2", "t3"], None)

    def test_stray_schedule_key_does_not_break_reads(self, business_doc):
        business_doc["operating_schedule"]["notes"] = None
        directory = self.make_directory(businesses=container_with(business_doc))

        business = directory.get_business("business1")

        assert business.schedule is None
        assert "notes" in business.schedule_error
        assert directory.get_business_tokens("business1") == ["t1", "t2", "t3"]

    def test_remove_business_tokens_pulls_only_dead(self, business_doc):
        businesses = container_with(business_doc)
        directory = self.make_directory(businesses=businesses)

        removed = directory.remove_business_tokens("business1", ["t2"])

        assert removed == ["t2"]
        call = businesses.replace_item.call_args
        assert call.kwargs["body"]["fcm_tokens"] == ["t1", "", "t1", "t3"]
        assert call.kwargs["etag"] == "etag-1"
        assert call.kwargs["match_condition"] == MatchConditions.IfNotModified

    def test_remove_business_tokens_leaves_owner_untouched(self):
        businesses = container_with({"id": "business1", "_etag": "e", "client_id": "owner1", "fcm_tokens": ["biz-tok"]})
        clients = container_with({"id": "owner1", "_etag": "c", "fcm_tokens": ["owner-phone"]})
        directory = self.make_directory(businesses=businesses, clients=clients)

        assert directory.remove_business_tokens("business1", ["owner-phone"]) == []
        businesses.replace_item.assert_not_called()
        clients.replace_item.assert_not_called()

    def test_remove_unknown_token_is_a_no_op(self, business_doc):
        businesses = container_with(business_doc)
        directory = self.make_directory(businesses=businesses, clients=container_with({"id": "owner1"}))

        assert directory.remove_business_tokens("business1", ["zzz"]) == []
        businesses.replace_item.assert_not_called()

    def test_token_update_retries_after_concurrent_write(self, business_doc):
        businesses = container_with(business_doc)
        businesses.replace_item.side_effect = [
            exceptions.CosmosAccessConditionFailedError(status_code=412, message="etag mismatch"),
            {"id": "business1"}
        ]
        directory = self.make_directory(businesses=businesses)

        removed = directory.remove_business_tokens("business1", ["t3"])

        assert removed == ["t3"]
        assert businesses.replace_item.call_count == 2

    def test_token_update_gives_up_after_retries(self, business_doc):
        businesses = container_with(business_doc)
        businesses.replace_item.side_effect = exceptions.CosmosAccessConditionFailedError(
            status_code=412, message="etag mismatch"
        )
        directory = self.make_directory(businesses=businesses)

        with pytest.raises(exceptions.CosmosAccessConditionFailedError):
            directory.remove_business_tokens("business1", ["t3"])

    def test_add_business_token_is_set_like(self, business_doc):
        businesses = container_with(business_doc)
        directory = self.make_directory(businesses=businesses)

        assert directory.add_business_token("business1", " t9 ")[-1] == "t9"
        directory.add_business_token("business1", "t1")
        assert businesses.replace_item.call_count == 1

    def test_add_token_validation(self, business_doc):
        directory = self.make_directory(businesses=container_with(business_doc))

        with pytest.raises(ValueError):
            directory.add_business_token("business1", "   ")
        with pytest.raises(ValueError):
            directory.add_business_token("business1", "x" * 5000)

    def test_add_token_unknown_owner(self):
        assert self.make_directory().add_client_token("ghost", "t1") is None

    def test_client_tokens_prefer_array_then_legacy(self, client_doc):
        directory = self.make_directory(clients=container_with(client_doc))
        assert directory.get_client_tokens("client1") == ["c1", "c2"]

        legacy = self.make_directory(clients=container_with({"id": "client1", "fcm_token": "solo"}))
        assert legacy.get_client_tokens("client1") == ["solo"]

    def test_remove_client_legacy_token_unsets_field(self):
        clients = container_with({"id": "client1", "_etag": "e", "fcm_token": "solo"})
        directory = self.make_directory(clients=clients)

        removed = directory.remove_client_tokens("client1", ["solo"])

        assert removed == ["solo"]
        assert "fcm_token" not in clients.replace_item.call_args.kwargs["body"]

    def test_selected_address_with_alternate_fields(self):
        locations = container_with({
            "client_id": "client1",
            "selected_location": True,
            "display_name": " 12 Main St ",
            "latlng": {"lat": "14.55", "lng": 121.02},
            "unit": 3,
            "instructions": "Blue gate"
        })
        directory = self.make_directory(locations=locations)

        address = directory.get_selected_address("client1")

        assert address.address == "12 Main St"
        assert address.latitude == 14.55
        assert address.longitude == 121.02
        assert address.floor == "3"
        assert address.note == "Blue gate"

    @pytest.mark.parametrize("doc", [
        {"address": "", "latitude": 1.0, "longitude": 2.0},
        {"address": "12 Main St", "latitude": "north", "longitude": 2.0},
        {"address": "12 Main St", "latitude": 1.0},
    ])
    def test_selected_address_incomplete(self, doc):
        directory = self.make_directory(locations=container_with(doc))

        assert directory.get_selected_address("client1") is None

    def test_no_selected_address(self):
        assert self.make_directory().get_selected_address("client1") is None

    def test_service_snapshot(self):
        services = container_with({"id": "svc1", "title": "Haircut", "price": 250, "duration": "45 mins"})
        directory = self.make_directory(services=services)

        snapshot = directory.get_service_snapshot("svc1")

        assert snapshot.title == "Haircut"
        assert snapshot.price == 250.0
        assert snapshot.duration == "45 mins"
