from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import src.registry.store as store
from src.geocoding import provider
from src.geocoding.provider import AddressComponent, GeocodeCandidate
from src.main import app
from src.nlp import llm_chat

ENV_KEYS = (
    "OPENAI_API_KEY",
    "GOOGLE_MAPS_API_KEY",
    "ZP_HELPLINE",
    "ZP_MAX_REGISTRATION_ATTEMPTS",
    "ZP_BOUNDS_MIN_LAT",
    "ZP_BOUNDS_MAX_LAT",
    "ZP_BOUNDS_MIN_LNG",
    "ZP_BOUNDS_MAX_LNG",
    "WHATSAPP_ACCESS_TOKEN",
    "WHATSAPP_VERIFY_TOKEN",
    "WHATSAPP_PHONE_NUMBER_ID",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Fresh SQLite file per test; no LLM, geocoding or WhatsApp credentials."""
    monkeypatch.setattr(store, "DB_PATH", tmp_path / "zp_test.db")
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    llm_chat.reset_chat_cache()
    store.init_db()
    yield
    llm_chat.reset_chat_cache()


def make_candidate(
    village: str,
    lat: float,
    lng: float,
    district: str = "Pune",
    taluka: str = "Purandar",
    region: str = "Maharashtra",
    location_type: str = "APPROXIMATE",
) -> GeocodeCandidate:
    return GeocodeCandidate(
        formatted_address=f"{village}, {district}, {region}, India",
        address_components=[
            AddressComponent(long_name=village, short_name=village, types=["locality", "political"]),
            AddressComponent(long_name=taluka, short_name=taluka, types=["administrative_area_level_3", "political"]),
            AddressComponent(long_name=district, short_name=district, types=["administrative_area_level_2", "political"]),
            AddressComponent(long_name=region, short_name="MH", types=["administrative_area_level_1", "political"]),
            AddressComponent(long_name="India", short_name="IN", types=["country", "political"]),
        ],
        lat=lat,
        lng=lng,
        location_type=location_type,
        place_id=f"place-{village.lower()}",
    )


class FakeGeocoder:
    """Stands in for provider.lookup; answers by the village part of the query."""

    def __init__(self):
        self.places: dict[str, list[GeocodeCandidate]] = {}
        self.calls: list[tuple[str, str]] = []
        self.error: Exception | None = None

    def add(self, village: str, candidate: GeocodeCandidate) -> None:
        self.places[village.lower()] = [candidate]

    def __call__(self, address_query: str, region_hint: str = "in", language: str = "en"):
        self.calls.append((address_query, language))
        if self.error:
            raise self.error
        village = address_query.split(",")[0].replace(" village", "").strip().lower()
        return list(self.places.get(village, []))


@pytest.fixture
def geocoder(monkeypatch):
    fake = FakeGeocoder()
    fake.add("Saswad", make_candidate("Saswad", 18.3436, 74.0319))
    fake.add("Jejuri", make_candidate("Jejuri", 18.2760, 74.1600))
    fake.add(
        "Mumbai",
        make_candidate("Mumbai", 19.0760, 72.8777, district="Mumbai Suburban", taluka="Andheri"),
    )
    monkeypatch.setattr(provider, "lookup", fake)
    return fake


class FakeStructured:
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def invoke(self, messages):
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeChat:
    """ChatOpenAI stand-in: structured results keyed by schema, free text under 'text'."""

    def __init__(self, results: dict):
        self.results = results

    def with_structured_output(self, schema):
        return FakeStructured(self.results[schema])

    def invoke(self, messages):
        text = self.results.get("text", "")
        if isinstance(text, Exception):
            raise text
        return SimpleNamespace(content=text)


@pytest.fixture
def fake_llm(monkeypatch):
    """Install a FakeChat; returns a setter taking the results dict."""

    def install(results: dict) -> FakeChat:
        chat = FakeChat(results)
        monkeypatch.setattr(llm_chat, "_get_chat", lambda temperature=0.7: chat)
        return chat

    return install


@pytest.fixture
def client(isolated_env):
    with TestClient(app) as test_client:
        yield test_client
