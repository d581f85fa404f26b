"""Tests for the Octopus API client."""

import base64
from datetime import datetime, timezone

import httpx
import pytest

from octoledger.collectors import octopus
from octoledger.config import OctopusConfig
from octoledger.errors import OctopusAPIError
from octoledger.models import Product

BASE = "https://api.example.test/"
CONFIG = OctopusConfig(endpoint="https://api.example.test", account="A-TEST1234", api_key="sk_test")
START = datetime(2024, 3, 1, tzinfo=timezone.utc)
END = datetime(2024, 3, 2, tzinfo=timezone.utc)


def make_client(handler) -> octopus.OctopusClient:
    return octopus.OctopusClient(CONFIG, transport=httpx.MockTransport(handler))


def test_account_uses_basic_auth():
    """The API key is sent as the basic auth username."""
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={
                "number": "A-TEST1234",
                "properties": [
                    {
                        "id": 1,
                        "moved_in_at": "2024-01-01T00:00:00Z",
                        "moved_out_at": None,
                        "electricity_meter_points": [
                            {"mpan": "1000000000001", "meters": [{"serial_number": "M1"}], "agreements": []}
                        ],
                    }
                ],
            },
        )

    with make_client(handler) as client:
        account = client.account()

    assert seen["url"] == BASE + "v1/accounts/A-TEST1234/"
    assert seen["auth"] == "Basic " + base64.b64encode(b"sk_test:").decode()
    assert account.number == "A-TEST1234"
    assert account.properties[0].moved_in_at == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_consumption_follows_pagination():
    """All pages are fetched and joined in order."""
    next_url = BASE + "v1/electricity-meter-points/1000000000001/meters/M1/consumption/?page=2"
    requests = []

    def handler(request):
        requests.append(request.url)
        if request.url.params.get("page") == "2":
            return httpx.Response(
                200,
                json={
                    "count": 2,
                    "next": None,
                    "results": [
                        {
                            "consumption": 0.3,
                            "interval_start": "2024-03-01T00:30:00Z",
                            "interval_end": "2024-03-01T01:00:00Z",
                        }
                    ],
                },
            )
        return httpx.Response(
            200,
            json={
                "count": 2,
                "next": next_url,
                "results": [
                    {
                        "consumption": 0.2,
                        "interval_start": "2024-03-01T00:00:00Z",
                        "interval_end": "2024-03-01T00:30:00Z",
                    }
                ],
            },
        )

    with make_client(handler) as client:
        intervals = client.fetch_consumption("1000000000001", "M1", START, END)

    assert len(requests) == 2
    first = requests[0].params
    assert first["period_from"] == "2024-03-01T00:00:00Z"
    assert first["period_to"] == "2024-03-02T00:00:00Z"
    assert first["page_size"] == "2000"
    assert first["order_by"] == "period"
    assert [i.consumption for i in intervals] == [0.2, 0.3]
    assert intervals[1].start == datetime(2024, 3, 1, 0, 30, tzinfo=timezone.utc)


def test_checkpoint_called_per_page():
    """The checkpoint runs once for each page fetched."""
    calls = []

    def handler(request):
        return httpx.Response(200, json={"count": 0, "next": None, "results": []})

    with make_client(handler) as client:
        client.fetch_consumption("1000000000001", "M1", START, END, checkpoint=lambda: calls.append(1))

    assert calls == [1]


def test_tariff_rates_returned_oldest_first():
    """The API lists newest rates first; the client sorts them."""
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        return httpx.Response(
            200,
            json={
                "count": 2,
                "next": None,
                "results": [
                    {
                        "value_exc_vat": 20.0,
                        "value_inc_vat": 21.0,
                        "valid_from": "2024-03-01T00:30:00Z",
                        "valid_to": "2024-03-01T01:00:00Z",
                    },
                    {
                        "value_exc_vat": 10.0,
                        "value_inc_vat": 10.5,
                        "valid_from": "2024-03-01T00:00:00Z",
                        "valid_to": "2024-03-01T00:30:00Z",
                    },
                ],
            },
        )

    with make_client(handler) as client:
        rates = client.fetch_tariff_rates("AGILE-24-04-03", "E-1R-AGILE-24-04-03-J", START, END)

    assert seen["path"] == "/v1/products/AGILE-24-04-03/electricity-tariffs/E-1R-AGILE-24-04-03-J/standard-unit-rates/"
    assert [r.unit_price_inc_vat for r in rates] == [10.5, 21.0]


def test_open_ended_rate():
    """A rate with no valid_to is kept open-ended."""
    def handler(request):
        return httpx.Response(
            200,
            json={
                "count": 1,
                "next": None,
                "results": [
                    {"value_exc_vat": 23.0, "value_inc_vat": 24.15, "valid_from": "2024-01-01T00:00:00Z", "valid_to": None}
                ],
            },
        )

    with make_client(handler) as client:
        rates = client.fetch_tariff_rates("VAR-22-11-01", "E-1R-VAR-22-11-01-J", START, END)

    assert rates[0].valid_to is None


def test_http_error():
    """Non-200 responses raise OctopusAPIError with the status."""
    def handler(request):
        return httpx.Response(404, json={"detail": "Not found."})

    with make_client(handler) as client:
        with pytest.raises(OctopusAPIError, match="404"):
            client.account()


def test_network_error():
    """Transport failures raise OctopusAPIError."""
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)

    with make_client(handler) as client:
        with pytest.raises(OctopusAPIError, match="Network error"):
            client.account()


def test_products():
    """Products are parsed from the listing."""
    def handler(request):
        return httpx.Response(
            200,
            json={
                "count": 1,
                "next": None,
                "results": [
                    {
                        "code": "AGILE-24-04-03",
                        "display_name": "Agile Octopus",
                        "description": "Half-hourly prices",
                        "is_variable": True,
                        "available_from": "2024-04-03T00:00:00+01:00",
                        "available_to": None,
                    }
                ],
            },
        )

    with make_client(handler) as client:
        products = client.products()

    assert products[0].code == "AGILE-24-04-03"
    assert products[0].is_variable is True
    assert products[0].available_to is None


@pytest.mark.parametrize(
    "code,expected",
    [
        ("E-1R-GO-VAR-22-10-14-J", ("E", "1R", "GO-VAR-22-10-14", "J")),
        ("A-BOB-TARIFF-BANANA", ("A", "BOB", "TARIFF", "BANANA")),
    ],
)
def test_parse_tariff_code(code, expected):
    """Tariff codes split into fuel, registers, product and region, and rebuild."""
    assert octopus.parse_tariff_code(code) == expected
    assert octopus.build_tariff_code(*expected) == code


def test_parse_tariff_code_too_short():
    """A code with fewer than four parts is rejected."""
    with pytest.raises(ValueError):
        octopus.parse_tariff_code("A-BOB-TARIFF")


def test_find_product_for_tariff():
    """The product whose code appears in the tariff code is found."""
    products = [Product(code="VAR-22-11-01"), Product(code="AGILE-24-04-03")]

    assert octopus.find_product_for_tariff(products, "E-1R-AGILE-24-04-03-J").code == "AGILE-24-04-03"
    assert octopus.find_product_for_tariff(products, "E-1R-GO-22-J") is None
