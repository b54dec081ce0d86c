from conftest import FakeSession

from jobfeed.config import Settings
from jobfeed.preferences import PreferenceStore
from jobfeed.runtime import build_service
from jobfeed.scheduler import BatchScheduler


def test_build_service_wires_free_sources_without_credentials(tmp_path):
    settings = Settings(database_path=tmp_path / "db" / "jobfeed.db", max_search_calls=7)
    service = build_service(
        settings,
        env_getter=lambda key, default="": "",
        session=FakeSession(),
        preferences=PreferenceStore(users={}),
    )

    names = [s.name for s in service.pipeline.sources]
    assert names[0] == "remoteok"
    assert "jsearch" not in names
    assert isinstance(service.scheduler, BatchScheduler)
    assert service.pipeline.orchestrator.budget.ceiling == 7
    assert service.pipeline.orchestrator.service.configured is False
    assert settings.database_path.exists()
    assert service.cache.is_empty()
    assert service.get_cache_stats()["persisted_cached_postings"] == 0
