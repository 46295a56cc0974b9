from enrichment_orchestrator.config.settings import Settings


def test_env_prefix_and_nested_values(monkeypatch) -> None:
    monkeypatch.setenv("ENRICHMENT_LLM_MODEL", "gpt-5")
    monkeypatch.setenv("ENRICHMENT_SWEEP_CONCURRENCY", "25")
    monkeypatch.setenv("ENRICHMENT_BUDGET_CEILINGS_USD", '{"manual-chef-addition": 3.5}')

    settings = Settings(_env_file=None)

    assert settings.llm_model == "gpt-5"
    assert settings.sweep_concurrency == 25
    assert settings.budget_ceilings_usd == {"manual-chef-addition": 3.5}
    assert settings.model_rates["gpt-5-mini"].completion == 2.00
    assert settings.cache_ttl_days["operating_status"] == 7


def test_database_url_falls_back_to_plain_env(monkeypatch) -> None:
    monkeypatch.delenv("ENRICHMENT_DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/enrichment")

    settings = Settings(_env_file=None)
    explicit = Settings(_env_file=None, database_url="postgresql://db/primary")

    assert settings.resolved_database_url() == "postgresql://localhost/enrichment"
    assert explicit.resolved_database_url() == "postgresql://db/primary"
