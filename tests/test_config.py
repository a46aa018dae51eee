"""Tests for environment-driven configuration."""
import os
import pytest
from contributor_origin.config import IngestionConfig, get_connection_string
from contributor_origin.domain.origin_analysis import DEFAULT_TARGET_LABELS


CONFIG_VARIABLES = [
    "GITHUB_TOKENS", "GITHUB_TOKEN", "MAX_CONCURRENCY", "PAGE_SIZE", "MAX_PAGES",
    "REQUEST_DELAY_MS", "SUFFICIENT_CONTRIBUTORS", "RATE_LIMIT_RETRIES",
    "MAX_RATE_LIMIT_WAIT", "WORKDIR", "LISTING_ENDPOINT", "TARGET_OFFSETS", "WORKING_HOURS",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in CONFIG_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    """Test the configuration with nothing set."""
    config = IngestionConfig.from_env()

    assert config.github_tokens == ()
    assert config.max_concurrency == 1
    assert config.page_size == 100
    assert config.request_delay == pytest.approx(0.1)
    assert config.listing_endpoint == "commits"
    assert config.rules.target_labels == DEFAULT_TARGET_LABELS
    assert (config.rules.working_hours_start, config.rules.working_hours_end) == (9, 18)


def test_overrides(clean_env):
    """Test reading every override."""
    clean_env.setenv("GITHUB_TOKENS", "a, b,,c")
    clean_env.setenv("GITHUB_TOKEN", "ignored")
    clean_env.setenv("MAX_CONCURRENCY", "0")
    clean_env.setenv("PAGE_SIZE", "250")
    clean_env.setenv("REQUEST_DELAY_MS", "0")
    clean_env.setenv("LISTING_ENDPOINT", "contributors")
    clean_env.setenv("TARGET_OFFSETS", "+05:30,IST")
    clean_env.setenv("WORKING_HOURS", "10-19")
    clean_env.setenv("WORKDIR", "/srv/clones")

    config = IngestionConfig.from_env()

    assert config.github_tokens == ("a", "b", "c")
    assert config.max_concurrency == 1
    assert config.page_size == 100
    assert config.request_delay == 0
    assert config.listing_endpoint == "contributors"
    assert config.rules.target_labels == frozenset({"+05:30", "IST"})
    assert config.rules.working_hours_start == 10
    assert config.working_copy_path("acme", "app") == os.path.join("/srv/clones", "acme-app")


def test_single_token_fallback(clean_env):
    """Test GITHUB_TOKEN when GITHUB_TOKENS is absent."""
    clean_env.setenv("GITHUB_TOKEN", "solo")

    assert IngestionConfig.from_env().github_tokens == ("solo",)


@pytest.mark.parametrize("name,value", [
    ("LISTING_ENDPOINT", "stargazers"),
    ("WORKING_HOURS", "18-9"),
    ("WORKING_HOURS", "9-25"),
])
def test_invalid_values(clean_env, name, value):
    """Test that invalid settings are rejected at startup."""
    clean_env.setenv(name, value)

    with pytest.raises(ValueError):
        IngestionConfig.from_env()


def test_connection_string(monkeypatch):
    """Test the PostgreSQL connection string."""
    monkeypatch.setenv("POSTGRES_HOST", "db")
    monkeypatch.setenv("POSTGRES_DB", "origins")

    conn_string = get_connection_string()

    assert "host=db" in conn_string
    assert "dbname=origins" in conn_string
