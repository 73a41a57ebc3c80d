"""Tests for the server API."""

import pytest
import yaml
from fastapi.testclient import TestClient

from fieldsubst.server import CONFIG_ENV, create_app, create_app_from_env

CARD_RULES = """\
ids: [cc_number]
patterns: ['^.*(\\d\\d\\d\\d)$']
templates: ['...$1']
"""

EXPIRATION_RULES = """\
ids: [1, 2]
patterns: ['^(\\d\\d)$', '^(\\d\\d\\d\\d)$']
templates: ['Exp: $1', ' / $1']
"""


@pytest.fixture
def config(tmp_path):
    """Write rule files and return a server config."""
    card = tmp_path / "card.yml"
    card.write_text(CARD_RULES, encoding="utf-8")
    expiration = tmp_path / "expiration.yml"
    expiration.write_text(EXPIRATION_RULES, encoding="utf-8")

    return {
        "rulesets": {"card": str(card), "expiration": str(expiration)},
        "engine": {"max_value_length": 100},
    }


@pytest.fixture
def client(config):
    """Create test client."""
    app = create_app(config)
    return TestClient(app)


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_check(self, client):
        """Test health check endpoint."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["rulesets_loaded"] == 2

    def test_health_without_rulesets(self):
        """Test server starts with no configured rule sets."""
        client = TestClient(create_app())
        assert client.get("/health").json()["rulesets_loaded"] == 0


class TestRulesetsEndpoint:
    """Tests for /rulesets endpoint."""

    def test_list_rulesets(self, client):
        """Test preloaded rule sets are listed with their fields."""
        response = client.get("/rulesets")
        assert response.status_code == 200

        data = {item["name"]: item["fields"] for item in response.json()}
        assert data == {"card": ["cc_number"], "expiration": [1, 2]}


class TestApplyEndpoint:
    """Tests for /apply endpoint."""

    def test_apply_named_ruleset(self, client):
        """Test applying a preloaded rule set."""
        response = client.post(
            "/apply",
            json={"ruleset": "card", "values": {"cc_number": "4111111111111234"}},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["text"] == "...1234"
        assert data["fields_applied"] == 1
        assert data["failures"] == []

    def test_apply_integer_ids(self, client):
        """Test rule ids loaded as integers match JSON keys."""
        response = client.post(
            "/apply",
            json={"ruleset": "expiration", "values": {"1": "07", "2": "2019"}},
        )
        assert response.status_code == 200
        assert response.json()["text"] == "Exp: 07 / 2019"

    def test_apply_inline_rules(self, client):
        """Test applying rules sent with the request."""
        response = client.post(
            "/apply",
            json={
                "rules": {
                    "rules": [
                        {"field": "a", "pattern": "^(\\d\\d)$", "template": "$1"},
                        {"field": "b", "pattern": "^(\\d+)$", "template": "-$2"},
                    ]
                },
                "values": {"a": "07", "b": "2019"},
            },
        )
        assert response.status_code == 200

        data = response.json()
        assert data["text"] == "07"
        assert data["failures"][0]["field"] == "b"
        assert "No group 2" in data["failures"][0]["reason"]

    def test_apply_missing_field(self, client):
        """Test a missing field fails the request."""
        response = client.post(
            "/apply",
            json={"ruleset": "expiration", "values": {"1": "07"}},
        )
        assert response.status_code == 422
        assert "No value for field" in response.json()["detail"]

    def test_apply_null_value_is_missing(self, client):
        """Test a null value counts as missing."""
        response = client.post(
            "/apply",
            json={"ruleset": "card", "values": {"cc_number": None}},
        )
        assert response.status_code == 422

    def test_apply_unknown_ruleset(self, client):
        """Test unknown rule set name."""
        response = client.post("/apply", json={"ruleset": "nope", "values": {}})
        assert response.status_code == 404

    def test_apply_without_rules(self, client):
        """Test request naming no rules."""
        response = client.post("/apply", json={"values": {"a": "1"}})
        assert response.status_code == 400

    def test_apply_invalid_inline_rules(self, client):
        """Test inline rules with a broken regex."""
        response = client.post(
            "/apply",
            json={
                "rules": {"ids": ["a"], "patterns": ["("], "templates": ["x"]},
                "values": {"a": "1"},
            },
        )
        assert response.status_code == 400
        assert "Invalid pattern" in response.json()["detail"]

    def test_apply_value_over_limit(self, client):
        """Test configured value length limit."""
        response = client.post(
            "/apply",
            json={"ruleset": "card", "values": {"cc_number": "1" * 101}},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["text"] == ""
        assert len(data["failures"]) == 1


class TestValidateEndpoint:
    """Tests for /validate endpoint."""

    def test_validate_ok(self, client):
        """Test valid rule set."""
        response = client.post(
            "/validate",
            json={"rules": {"ids": ["a", "b"], "patterns": ["x", "y"], "templates": ["1", "2"]}},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["ok"] is True
        assert data["field_count"] == 2

    def test_validate_mismatched(self, client):
        """Test mismatched sequences."""
        response = client.post(
            "/validate",
            json={"rules": {"ids": ["a", "b"], "patterns": ["x"], "templates": ["1"]}},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["ok"] is False
        assert "Mismatched" in data["error"]


class TestReloadAndMetrics:
    """Tests for /reload and /metrics endpoints."""

    def test_reload_picks_up_changes(self, client, config):
        """Test reload re-reads rule files."""
        with open(config["rulesets"]["card"], "w", encoding="utf-8") as f:
            f.write("ids: [cc_number]\npatterns: ['^(\\d\\d)']\ntemplates: ['$1-']\n")

        response = client.post("/reload")
        assert response.status_code == 200
        assert response.json()["rulesets_loaded"] == 2

        response = client.post("/apply", json={"ruleset": "card", "values": {"cc_number": "4111"}})
        assert response.json()["text"] == "41-11"

    def test_reload_failure(self, client, config):
        """Test reload of a broken rule file."""
        with open(config["rulesets"]["card"], "w", encoding="utf-8") as f:
            f.write("ids: []\n")

        response = client.post("/reload")
        assert response.status_code == 500

        # Previously loaded rule sets stay in place
        response = client.post("/apply", json={"ruleset": "card", "values": {"cc_number": "4111111111111234"}})
        assert response.json()["text"] == "...1234"

    def test_metrics(self, client):
        """Test Prometheus metrics endpoint."""
        client.get("/health")
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "fieldsubst_requests_total" in response.text


class TestAppFromEnv:
    """Tests for building the app from a config file path."""

    def test_config_from_env(self, config, tmp_path, monkeypatch):
        """Test the factory reads the config named in the environment."""
        path = tmp_path / "server.yml"
        path.write_text(yaml.safe_dump(config), encoding="utf-8")
        monkeypatch.setenv(CONFIG_ENV, str(path))

        client = TestClient(create_app_from_env())

        assert client.get("/health").json()["rulesets_loaded"] == 2

    def test_without_config(self, monkeypatch):
        """Test the factory works with no config file."""
        monkeypatch.delenv(CONFIG_ENV, raising=False)

        client = TestClient(create_app_from_env())

        assert client.get("/health").json()["rulesets_loaded"] == 0
