"""Tests for the command line entry point."""
import pytest
from ingest_contributors import main, register
from contributor_origin.domain.errors import PersistenceError
from contributor_origin.domain.models import RepositoryRecord
from contributor_origin.infrastructure.memory_storage import InMemoryContributorStorage


def test_register_collapses_repeated_urls():
    """Test that the same repository given twice is registered once."""
    storage = InMemoryContributorStorage()

    exit_code = register(storage, ["https://github.com/Acme/App", "acme/app.git"])

    assert exit_code == 0
    repos = storage.list_repositories()
    assert [(repo.owner, repo.name) for repo in repos] == [("Acme", "App")]


def test_register_with_display_name():
    """Test the optional display name of a single repository."""
    storage = InMemoryContributorStorage()

    assert register(storage, ["https://github.com/acme/app"], name="Acme App") == 0
    assert storage.list_repositories()[0].label == "Acme App"


def test_register_reports_invalid_url():
    """Test that invalid URLs give a failing exit code but valid ones are kept."""
    storage = InMemoryContributorStorage()

    assert register(storage, ["not-a-repo", "acme/app"]) == 1
    assert storage.find_repo_id("acme", "app") is not None


class FailingStorage(InMemoryContributorStorage):
    def register_repositories(self, repositories):
        raise PersistenceError("register_repositories", len(repositories), RuntimeError("db down"))


def test_register_storage_failure_is_an_exit_code():
    """Test that a storage failure is logged and returned, not raised."""
    assert register(FailingStorage(), ["acme/app"]) == 1


@pytest.mark.asyncio
async def test_dry_run_without_repositories_warns(caplog):
    """Test that an empty run says why nothing happened."""
    exit_code = await main(["--dry-run", "run"])

    assert exit_code == 0
    assert "No repositories registered" in caplog.text


@pytest.mark.asyncio
async def test_name_needs_single_url():
    """Test that --name is rejected with several URLs."""
    with pytest.raises(SystemExit):
        await main(["--dry-run", "register", "acme/a", "acme/b", "--name", "Both"])


@pytest.mark.asyncio
async def test_sample_config(tmp_path):
    """Test writing the template env file."""
    path = tmp_path / "sample.env"

    assert await main(["--sample-config", str(path)]) == 0

    content = path.read_text(encoding="utf-8")
    assert "GITHUB_TOKENS=" in content
    assert "TARGET_OFFSETS=+0800,+08:00,CST,Asia/Shanghai" in content


def test_repository_label_defaults_to_full_name():
    """Test the label used in logs and exports."""
    assert RepositoryRecord("acme", "app").label == "acme/app"
